from campus_voice.api.routes.admin import router as admin
from campus_voice.api.routes.auth import router as auth
from campus_voice.api.routes.health import router as health
from campus_voice.api.routes.live import router as live
from campus_voice.api.routes.tickets import router as tickets

__all__ = ["admin", "auth", "health", "live", "tickets"]
