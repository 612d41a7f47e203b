from typing import Annotated, Dict, Any, List, Optional, Tuple
import kopf
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

ID_SEPARATOR = ":"
RESOURCE_NAME = "Queue Quick Connect Association"

QuickConnectId = Annotated[str, Field(min_length=1)]

def association_id(instance_id: str, queue_id: str) -> str:
    """Build the composite identifier of an association."""
    return f"{instance_id}{ID_SEPARATOR}{queue_id}"

def parse_association_id(identifier: str) -> Tuple[str, str]:
    """
    Split a composite identifier back into its instance and queue ids.

    Args:
        identifier: Identifier in the form "<instance-id>:<queue-id>"

    Returns:
        Tuple of (instance_id, queue_id)

    Raises:
        ValueError: If the identifier is not in the expected form
    """
    instance_id, sep, queue_id = (identifier or "").partition(ID_SEPARATOR)
    if not sep or not instance_id or not queue_id:
        raise ValueError(
            f"Invalid {RESOURCE_NAME} id {identifier!r}, expected <instance-id>{ID_SEPARATOR}<queue-id>"
        )
    return instance_id, queue_id

def problem_message(action: str, resource_id: str, error: Exception) -> str:
    """Standard error message for a failed remote operation."""
    return f"{action} Connect {RESOURCE_NAME} ({resource_id}): {error}"

def validation_message(error: ValidationError) -> str:
    details = []
    for err in error.errors():
        location = ".".join(str(part) for part in err['loc'])
        details.append(f"{location}: {err['msg']}" if location else err['msg'])
    return f"Invalid {RESOURCE_NAME} spec: {'; '.join(details)}"

class QueueQuickConnectAssociation(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    instance_id: str = Field(alias='instanceId', min_length=1)
    queue_id: str = Field(alias='queueId', min_length=1)
    quick_connect_ids: List[QuickConnectId] = Field(default_factory=list, alias='quickConnectIds')
    region: Optional[str] = None

    @model_validator(mode='before')
    @classmethod
    def expand_import_id(cls, data: Any) -> Any:
        """Fill in instanceId and queueId from importId when they are missing."""
        if isinstance(data, dict) and data.get('importId') and not (data.get('instanceId') and data.get('queueId')):
            instance_id, queue_id = parse_association_id(data['importId'])
            data = dict(data, instanceId=instance_id, queueId=queue_id)
        return data

    @property
    def id(self) -> str:
        return association_id(self.instance_id, self.queue_id)

    @classmethod
    def from_spec(cls, spec: Dict[str, Any], require_quick_connects: bool = True) -> "QueueQuickConnectAssociation":
        """
        Build an association from a custom resource spec.

        When ``require_quick_connects`` is False (adopting an existing
        association) the quick connect list may be absent.

        Raises:
            kopf.PermanentError: If required fields are missing or malformed
        """
        model = AssociationSpec if require_quick_connects else cls
        try:
            parsed = model.model_validate(dict(spec))
        except ValidationError as e:
            raise kopf.PermanentError(validation_message(e))
        return cls.model_validate(parsed.model_dump())

    @classmethod
    def from_status(cls, status: Dict[str, Any]) -> "QueueQuickConnectAssociation":
        """Rebuild an association from the status written by a previous handler run."""
        try:
            instance_id, queue_id = parse_association_id(status.get('id'))
        except ValueError as e:
            raise kopf.PermanentError(str(e))
        return cls(
            instance_id=instance_id,
            queue_id=queue_id,
            quick_connect_ids=list(status.get('quickConnectIds') or []),
            region=status.get('region')
        )

    def to_status(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'instanceId': self.instance_id,
            'queueId': self.queue_id,
            'quickConnectIds': list(self.quick_connect_ids),
            'region': self.region,
            'state': 'active',
            'error': None
        }

class AssociationSpec(QueueQuickConnectAssociation):
    """Association being created, which needs at least one quick connect."""

    quick_connect_ids: List[QuickConnectId] = Field(alias='quickConnectIds', min_length=1)
