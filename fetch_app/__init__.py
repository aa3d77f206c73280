"""
Fetch session service: the client-side half of a paper fetch job.
"""
