"""Identity sync: OIDC session glue and backend user synchronization.

This package contains the web front (login, session cookie, sync routes),
the resource server identity endpoint, and the credential selection and
synchronization protocol that connects the two.
"""

__version__ = "0.1.0"
