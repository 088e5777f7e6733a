from salesdesk.identity.models import User
from salesdesk.models.audit import AuditLog
from salesdesk.crm.models import (
	Account,
	Campaign,
	Communication,
	Contact,
	Deal,
	Lead,
	Notification,
	Organization,
	Task,
)

__all__ = [
	"AuditLog",
	"Account",
	"Campaign",
	"Communication",
	"Contact",
	"Deal",
	"Lead",
	"Notification",
	"Organization",
	"Task",
	"User",
]
