"""
Shared Flask extensions created outside the app factory.

Blueprints import the limiter from here to decorate routes before
create_app() binds it to an application.
"""

from __future__ import annotations

from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, default_limits=["300 per hour"])
