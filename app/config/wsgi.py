"""
WSGI config for the messaging backend.

Serves the REST API only; the realtime ws/chat/ endpoint needs the ASGI
application in config.asgi. Useful for management tooling and for
deployments that put websockets on a separate ASGI process.

For more information on this file, see:
https://docs.djangoproject.com/en/5.2/howto/deployment/wsgi/
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

application = get_wsgi_application()
