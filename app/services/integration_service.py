import json
from datetime import datetime, timezone
from typing import Iterable, Optional, Union

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.errors import ChatBridgeError, PersistenceError, ValidationError
from app.logging_config import get_logger
from app.models import Integration
from app.services.platforms import PlatformRegistry

logger = get_logger("integration_service")


def get_integration_by_external_id(db: Session, external_id: str) -> Optional[Integration]:
    """Find integration by the id platforms put on inbound events."""
    return db.query(Integration).filter(Integration.external_id == external_id).first()


def get_integration_by_erxes_id(db: Session, erxes_api_id: str) -> Optional[Integration]:
    return db.query(Integration).filter(Integration.erxes_api_id == erxes_api_id).first()


def parse_props(data: Union[str, dict]) -> dict:
    """Decode integration props sent as a JSON string or an object."""
    if isinstance(data, dict):
        return dict(data)
    try:
        props = json.loads(data)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Integration data is not valid JSON: {e}") from e
    if not isinstance(props, dict):
        raise ValidationError("Integration data must be a JSON object")
    return props


class IntegrationProvisioner:
    def __init__(self, registry: PlatformRegistry):
        self.registry = registry

    async def provision(
        self,
        db: Session,
        kind: str,
        erxes_api_id: str,
        data: Union[str, dict],
        allowed_kinds: Optional[Iterable[str]] = None,
    ) -> Integration:
        """Create an integration locally, then on the platform side.

        If the platform call fails the local record is deleted again and the
        error is re-raised.
        """
        kind = self.registry.normalize_kind(kind)
        adapter = self.registry.get(kind)
        if allowed_kinds is not None and kind not in allowed_kinds:
            raise ValidationError(f"Integration kind '{kind}' is not supported on this route")

        props = parse_props(data)
        credentials = adapter.build_credentials(props)
        adapter.ensure_available()

        external_id = adapter.external_id_for(credentials)
        try:
            if external_id and get_integration_by_external_id(db, external_id):
                raise ValidationError(f"Integration already exists with this id: {external_id}")
            if get_integration_by_erxes_id(db, erxes_api_id):
                raise ValidationError(f"Integration already exists: {erxes_api_id}")
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceError(f"Failed to look up integrations: {e}") from e

        integration = Integration(
            kind=kind,
            erxes_api_id=erxes_api_id,
            external_id=external_id,
            display_name=props.get("displayName"),
            credentials=credentials,
            created_at=datetime.now(timezone.utc),
        )
        self._save(db, integration)

        try:
            remote_id = await adapter.register_remote(props)
        except ChatBridgeError as e:
            logger.error(
                "Remote integration create failed, removing local record",
                extra={"context": {"erxes_api_id": erxes_api_id, "kind": kind, "error": e.message}},
            )
            self._delete(db, integration)
            raise

        if remote_id:
            integration.external_id = remote_id
            integration.updated_at = datetime.now(timezone.utc)
            try:
                self._save(db, integration)
            except ChatBridgeError:
                self._delete(db, integration)
                raise

        logger.info(
            "Integration created",
            extra={
                "context": {
                    "integration_id": str(integration.id),
                    "erxes_api_id": erxes_api_id,
                    "kind": kind,
                    "external_id": integration.external_id,
                }
            },
        )
        return integration

    def _save(self, db: Session, integration: Integration) -> None:
        db.add(integration)
        try:
            db.commit()
        except IntegrityError as e:
            db.rollback()
            raise ValidationError(f"Integration already exists: {integration.erxes_api_id}") from e
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceError(f"Failed to save integration: {e}") from e

    def _delete(self, db: Session, integration: Integration) -> None:
        try:
            db.delete(integration)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceError(f"Failed to remove integration {integration.erxes_api_id}: {e}") from e
