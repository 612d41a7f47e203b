from typing import Any, List
import logging
import kopf
from botocore.exceptions import BotoCoreError, ClientError
from .association import QueueQuickConnectAssociation, problem_message

logger = logging.getLogger(__name__)

# Largest page ListQueueQuickConnects will return
LIST_PAGE_SIZE = 100

def list_all_queue_quick_connect_ids(connect: Any, instance_id: str, queue_id: str) -> List[str]:
    """
    Collect the ids of every quick connect associated with a queue.

    Pages through ListQueueQuickConnects, passing each NextToken into the
    following request, until a response comes back without one.

    Args:
        connect: Amazon Connect client
        instance_id: Identifier of the Connect instance
        queue_id: Identifier of the queue

    Returns:
        List[str]: Quick connect ids in page order, then in-page order

    Raises:
        botocore.exceptions.ClientError: If any page request fails
    """
    quick_connect_ids = []
    request = {
        'InstanceId': instance_id,
        'QueueId': queue_id,
        'MaxResults': LIST_PAGE_SIZE
    }
    while True:
        response = connect.list_queue_quick_connects(**request)
        for summary in response.get('QuickConnectSummaryList', []):
            quick_connect_ids.append(summary['Id'])

        next_token = response.get('NextToken')
        if not next_token:
            break
        request['NextToken'] = next_token

    return quick_connect_ids

def associate_queue_quick_connects(connect: Any, association: QueueQuickConnectAssociation) -> str:
    """
    Associate the configured quick connects with the queue.

    Args:
        connect: Amazon Connect client
        association: Desired association

    Returns:
        str: Identifier of the association ("<instance-id>:<queue-id>")

    Raises:
        kopf.PermanentError: If the associate call fails
    """
    try:
        connect.associate_queue_quick_connects(
            InstanceId=association.instance_id,
            QueueId=association.queue_id,
            QuickConnectIds=association.quick_connect_ids
        )
    except (ClientError, BotoCoreError) as e:
        message = problem_message("creating", association.instance_id, e)
        logger.error(message)
        raise kopf.PermanentError(message)

    logger.info(f"Associated {len(association.quick_connect_ids)} quick connects with queue {association.id}")
    return association.id

def read_queue_quick_connects(connect: Any, association: QueueQuickConnectAssociation) -> QueueQuickConnectAssociation:
    """
    Rebuild an association from the quick connects currently on the queue.

    The returned association holds exactly the remote membership, so
    reading an unchanged queue twice gives the same list.

    Args:
        connect: Amazon Connect client
        association: Association to refresh, left unmodified

    Returns:
        QueueQuickConnectAssociation: Association with the remote quick connect ids

    Raises:
        kopf.PermanentError: If listing fails
    """
    try:
        quick_connect_ids = list_all_queue_quick_connect_ids(
            connect,
            association.instance_id,
            association.queue_id
        )
    except (ClientError, BotoCoreError) as e:
        message = problem_message("reading", association.instance_id, e)
        logger.error(message)
        raise kopf.PermanentError(message)

    return association.model_copy(update={'quick_connect_ids': quick_connect_ids})

def disassociate_queue_quick_connects(connect: Any, association: QueueQuickConnectAssociation) -> None:
    """
    Remove the association's quick connects from the queue.

    A missing instance or queue means there is nothing left to remove.

    Args:
        connect: Amazon Connect client
        association: Association to remove

    Raises:
        kopf.PermanentError: If the disassociate call fails
    """
    if not association.quick_connect_ids:
        logger.info(f"No quick connects to disassociate from queue {association.id}")
        return

    try:
        connect.disassociate_queue_quick_connects(
            InstanceId=association.instance_id,
            QueueId=association.queue_id,
            QuickConnectIds=association.quick_connect_ids
        )
        logger.info(f"Disassociated {len(association.quick_connect_ids)} quick connects from queue {association.id}")
    except ClientError as e:
        if e.response.get('Error', {}).get('Code') == 'ResourceNotFoundException':
            logger.warning(f"Queue {association.id} not found, nothing to disassociate")
            return
        message = problem_message("deleting", association.instance_id, e)
        logger.error(message)
        raise kopf.PermanentError(message)
    except BotoCoreError as e:
        message = problem_message("deleting", association.instance_id, e)
        logger.error(message)
        raise kopf.PermanentError(message)
