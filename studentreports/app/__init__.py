"""Application modules for the student reports backend service.

``server`` mounts the routers from :mod:`studentreports.app.routes`; the
modules here hold the Firestore, storage and rendering logic those routers
call.
"""

from . import auth, config, pdf_service, reports, roster, svg_template

__all__ = [
    "auth",
    "config",
    "pdf_service",
    "reports",
    "roster",
    "svg_template",
]
