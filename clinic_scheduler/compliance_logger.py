import logging
from typing import Optional, Any, Dict

from sqlalchemy.orm import Session

from . import models

logger = logging.getLogger(__name__)


class ComplianceLogger:
	"""Records audit events as AuditLog rows in the caller's session.

	Rows are added to the session but not committed, so an audit entry lands
	in the same transaction as the mutation it describes.
	"""

	STANDARD_ACTIONS = {a.value for a in models.AuditAction}

	def normalize_action(self, action: str) -> models.AuditAction:
		action_upper = (action or '').upper()
		if action_upper in self.STANDARD_ACTIONS:
			return models.AuditAction(action_upper)
		if 'LOGIN' in action_upper:
			return models.AuditAction.LOGIN
		if action_upper.endswith('_CREATE') or action_upper.startswith('CREATE_') or 'BOOK' in action_upper:
			return models.AuditAction.CREATE
		if action_upper.endswith('_DELETE') or action_upper.startswith('DELETE_'):
			return models.AuditAction.DELETE
		if 'DENIED' in action_upper:
			return models.AuditAction.ACCESS_DENIED
		if any(k in action_upper for k in ('UPDATE', 'STATUS', 'CANCEL', 'DELAY', 'SCHEDULE', 'REMINDER')):
			return models.AuditAction.UPDATE
		return models.AuditAction.READ

	def log_event(
		self,
		db: Session,
		user_id: Optional[int],
		action: str,
		category: str,
		details: Optional[str] = None,
		severity: str = 'INFO',
		resource_type: Optional[str] = None,
		resource_id: Optional[int] = None,
		new_values: Optional[Dict[str, Any]] = None,
	) -> None:
		entry = models.AuditLog(
			user_id=user_id,
			action=self.normalize_action(action),
			category=category,
			severity=severity,
			resource_type=resource_type,
			resource_id=resource_id,
			details=details if details else action,
			new_values=new_values,
		)
		db.add(entry)
		logger.debug(f"Audit {entry.action.value} {category} {resource_type}:{resource_id} by {user_id}")


compliance_logger = ComplianceLogger()
