"""Calendar access control

Components:
    domains.py: Email-domain derivation and domain-grant validation
    grants.py: Authorization checks, grants and revocation
    requests.py: Permission request lifecycle
"""
