import kopf
import kubernetes
import logging
import os
import threading
from typing import Dict, Any
from .aws.client import get_connect_client
from .aws.association import QueueQuickConnectAssociation
from .aws.quick_connect import (
    associate_queue_quick_connects,
    read_queue_quick_connects,
    disassociate_queue_quick_connects
)
from .webhook.server import start_webhook_server, FINALIZER_NAME

logger = logging.getLogger(__name__)

# Constants
GROUP = "aws.k8s.io"
VERSION = "v1"
PLURAL = "awsconnectqueuequickconnects"
DEFAULT_CHECK_INTERVAL = 60  # Default interval in seconds for periodic reads
HANDLER_TIMEOUT = 30 * 60  # seconds
STATE_REPLACING = "replacing"

RECONCILE_INTERVAL = int(os.getenv('RECONCILE_INTERVAL', DEFAULT_CHECK_INTERVAL))

def patch_status(meta: Dict[str, Any], status_update: Dict[str, Any]) -> None:
    """Write a status update onto the custom resource."""
    api = kubernetes.client.CustomObjectsApi()
    api.patch_namespaced_custom_object_status(
        group=GROUP,
        version=VERSION,
        plural=PLURAL,
        namespace=meta['namespace'],
        name=meta['name'],
        body={'status': status_update}
    )

def patch_error_status(meta: Dict[str, Any], error: Exception, logger: Any) -> None:
    try:
        patch_status(meta, {'state': 'error', 'error': str(error)})
    except Exception as status_e:
        logger.error(f"Failed to update error status: {str(status_e)}", exc_info=True)

def set_finalizers(meta: Dict[str, Any], finalizers: list) -> None:
    api = kubernetes.client.CustomObjectsApi()
    api.patch_namespaced_custom_object(
        group=GROUP,
        version=VERSION,
        plural=PLURAL,
        namespace=meta['namespace'],
        name=meta['name'],
        body={
            'metadata': {
                'finalizers': finalizers
            }
        }
    )

@kopf.on.startup()
def startup_fn(logger, **kwargs):
    """Start the webhook server."""
    try:
        webhook_thread = threading.Thread(target=start_webhook_server, daemon=True)
        webhook_thread.start()
        logger.info("Started webhook server in background thread")
    except Exception as e:
        logger.error(f"Failed to start webhook server: {str(e)}", exc_info=True)
        raise kopf.PermanentError("Failed to start webhook server")

@kopf.on.create(GROUP, VERSION, PLURAL, timeout=HANDLER_TIMEOUT)
def create_fn(spec: Dict[str, Any], meta: Dict[str, Any], status: Dict[str, Any], logger: Any, **kwargs) -> Dict[str, Any]:
    """
    Handle creation of a queue quick connect association.

    A resource that only carries an importId adopts the existing association
    by reading it instead of associating anything.
    """
    logger.info(f"Creating Connect queue quick connect association: {meta['name']}")

    finalizers = list(meta.get('finalizers', []))
    if FINALIZER_NAME not in finalizers:
        finalizers.append(FINALIZER_NAME)
        set_finalizers(meta, finalizers)

    importing = bool(spec.get('importId')) and not spec.get('quickConnectIds')

    try:
        association = QueueQuickConnectAssociation.from_spec(spec, require_quick_connects=not importing)
        connect = get_connect_client(region=spec.get('region'))

        if importing:
            association = read_queue_quick_connects(connect, association)
            logger.info(f"Imported association {association.id} with {len(association.quick_connect_ids)} quick connects")
        else:
            associate_queue_quick_connects(connect, association)
            logger.info(f"Successfully created association: {association.id}")

        status_update = association.to_status()
        try:
            patch_status(meta, status_update)
            logger.info(f"Successfully updated status for {meta['name']}")
        except Exception as e:
            logger.error(f"Failed to update status: {str(e)}", exc_info=True)
            # Don't raise error here as the association was created successfully

        return status_update

    except Exception as e:
        logger.error(f"Error creating association: {str(e)}", exc_info=True)
        patch_error_status(meta, e, logger)
        raise kopf.PermanentError(f"Failed to create association: {str(e)}")

@kopf.on.delete(GROUP, VERSION, PLURAL, timeout=HANDLER_TIMEOUT)
def delete_fn(spec: Dict[str, Any], meta: Dict[str, Any], status: Dict[str, Any], logger: Any, **kwargs):
    """
    Handle deletion by removing the associated quick connects from the queue.
    """
    logger.info(f"Deleting Connect queue quick connect association: {meta['name']}")

    if not status.get('id'):
        logger.warning("No association id found in status, skipping deletion")
    else:
        try:
            association = QueueQuickConnectAssociation.from_status(status)
            # Only remove what this resource asked for; imported resources own everything they read
            if spec.get('quickConnectIds'):
                association.quick_connect_ids = list(spec['quickConnectIds'])

            connect = get_connect_client(region=association.region or spec.get('region'))
            disassociate_queue_quick_connects(connect, association)
            logger.info(f"Successfully deleted association: {association.id}")
        except Exception as e:
            logger.error(f"Error deleting association: {str(e)}", exc_info=True)
            raise kopf.PermanentError(f"Failed to delete association: {str(e)}")

    finalizers = list(meta.get('finalizers', []))
    if FINALIZER_NAME in finalizers:
        finalizers.remove(FINALIZER_NAME)
        set_finalizers(meta, finalizers)

@kopf.on.field(GROUP, VERSION, PLURAL, field='spec', timeout=HANDLER_TIMEOUT)
def spec_handler(spec: Dict[str, Any], meta: Dict[str, Any], status: Dict[str, Any], old: Dict[str, Any], new: Dict[str, Any], logger: Any, **kwargs):
    """
    Handle changes to the spec by replacing the association.

    Every field, region included, forces recreation: the old quick connects
    are removed from the old queue before the new ones are associated. Once
    the old ones are gone the status is cleared and marked replacing, so a
    failed associate is retried rather than reported as the old association.
    """
    if not old:
        return

    logger.info(f"Handling spec change for Connect queue quick connect association: {meta['name']}")

    replacing = status.get('state') == STATE_REPLACING
    if not status.get('id') and not replacing:
        logger.warning("No association id found in status, skipping replacement")
        return

    try:
        new_association = QueueQuickConnectAssociation.from_spec(new)

        if status.get('id'):
            old_association = QueueQuickConnectAssociation.from_status(status)
            if old.get('quickConnectIds'):
                old_association.quick_connect_ids = list(old['quickConnectIds'])
            if old_association.region is None:
                old_association.region = old.get('region')

            if old_association == new_association:
                logger.info(f"Association {new_association.id} unchanged, nothing to replace")
                return

            old_connect = get_connect_client(region=old_association.region)
            disassociate_queue_quick_connects(old_connect, old_association)
            patch_status(meta, {
                'id': None,
                'instanceId': None,
                'queueId': None,
                'quickConnectIds': [],
                'state': STATE_REPLACING,
                'error': None
            })
            logger.info(f"Removed association {old_association.id}, associating {new_association.id}")
    except Exception as e:
        logger.error(f"Error replacing association: {str(e)}", exc_info=True)
        patch_error_status(meta, e, logger)
        raise kopf.PermanentError(f"Failed to replace association: {str(e)}")

    try:
        connect = get_connect_client(region=new_association.region)
        associate_queue_quick_connects(connect, new_association)
        logger.info(f"Replaced association with {new_association.id}")
    except Exception as e:
        logger.error(f"Error associating replacement: {str(e)}", exc_info=True)
        try:
            patch_status(meta, {'state': STATE_REPLACING, 'error': str(e)})
        except Exception as status_e:
            logger.error(f"Failed to update error status: {str(status_e)}", exc_info=True)
        raise kopf.TemporaryError(f"Failed to replace association: {str(e)}", delay=RECONCILE_INTERVAL)

    try:
        patch_status(meta, new_association.to_status())
        logger.info(f"Successfully updated status for {meta['name']}")
    except Exception as e:
        logger.error(f"Failed to update status: {str(e)}", exc_info=True)

@kopf.timer(GROUP, VERSION, PLURAL, interval=RECONCILE_INTERVAL)
def read_fn(spec: Dict[str, Any], meta: Dict[str, Any], status: Dict[str, Any], logger: Any, **kwargs):
    """
    Periodically refresh the status from the quick connects on the queue.

    The status is left alone while it describes a different association
    than the spec, which happens until a replacement has gone through.
    """
    if not status.get('id'):
        return

    try:
        association = QueueQuickConnectAssociation.from_status(status)
        if association.region is None:
            association.region = spec.get('region')
        desired = QueueQuickConnectAssociation.from_spec(spec, require_quick_connects=False)
    except kopf.PermanentError as e:
        logger.warning(f"Skipping read: {str(e)}")
        return

    if (desired.id, desired.region) != (association.id, association.region):
        logger.warning(f"Status holds {association.id} but spec asks for {desired.id}, waiting for replacement")
        return

    try:
        connect = get_connect_client(region=association.region)
        current = read_queue_quick_connects(connect, association)
    except Exception as e:
        logger.error(f"Error reading association: {str(e)}")
        patch_error_status(meta, e, logger)
        raise kopf.TemporaryError(f"Failed to read association: {str(e)}", delay=RECONCILE_INTERVAL)

    missing = [qc for qc in desired.quick_connect_ids if qc not in current.quick_connect_ids]
    if missing:
        logger.warning(f"Quick connects {missing} are no longer associated with queue {current.id}")

    if current.quick_connect_ids != association.quick_connect_ids or status.get('state') != 'active':
        patch_status(meta, current.to_status())
        logger.info(f"Refreshed status for {meta['name']}")
