"""
ASGI config for the meal voucher ledger.

Served by an ASGI server (e.g. Uvicorn). The ledger has no WebSocket
surface, so only Django's HTTP application is exposed.

For more information on this file, see:
https://docs.djangoproject.com/en/5.2/howto/deployment/asgi/
"""

import os

from django.core.asgi import get_asgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

application = get_asgi_application()
