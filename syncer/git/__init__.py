"""
Git Layer — Reference resolution, credentials, inspection and the git runner.
"""
