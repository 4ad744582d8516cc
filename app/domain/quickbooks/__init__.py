"""QuickBooks domain module - connection, numbering, import, export, webhooks and attachments"""

from .router import router
from .webhook_router import router as webhook_router

__all__ = ["router", "webhook_router"]
