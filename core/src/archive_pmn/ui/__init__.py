"""Server-rendered web UI for the archive.

Plain HTML forms with redirects, served by the same FastAPI app:
- login / registration pages
- dashboard, document tree, messaging, administration
- the public page behind multi-document share links

Auth: the session token travels in an HttpOnly cookie.
"""
