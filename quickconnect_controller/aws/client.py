import boto3
from botocore.config import Config
import logging
import os

# Retries are left to kopf, which re-runs failed handlers
aws_config = Config(
    retries=dict(
        total_max_attempts=1
    )
)

# Configure to use regional STS endpoints for IRSA
if os.environ.get('AWS_DEFAULT_REGION'):
    os.environ['AWS_STS_REGIONAL_ENDPOINTS'] = 'regional'

logger = logging.getLogger(__name__)

def get_credentials():
    """Get AWS credentials using the credential chain.

    The chain will try:
    1. IRSA (IAM Roles for Service Accounts)
    2. EC2 Instance Profile (Node IAM Role)
    3. Environment variables
    4. Shared credentials file

    Returns:
        botocore.credentials.Credentials if found, None otherwise
    """
    try:
        session = boto3.Session()
        credentials = session.get_credentials()
        if credentials is None:
            logger.warning("No AWS credentials found in the credential chain")
            return None
        return credentials
    except Exception as e:
        logger.error(f"Error getting AWS credentials: {str(e)}")
        return None

def get_connect_client(region=None):
    """Get an Amazon Connect client for the given region.

    A new client is built on every call so that each handler works with the
    region of the resource it is reconciling.

    Args:
        region (str, optional): AWS region to use. If not provided, uses default region.

    Returns:
        boto3.client: Amazon Connect client
    """
    client_kwargs = {'config': aws_config}

    if region:
        client_kwargs['region_name'] = region
    elif os.environ.get('AWS_DEFAULT_REGION'):
        client_kwargs['region_name'] = os.environ.get('AWS_DEFAULT_REGION')

    credentials = get_credentials()
    if credentials:
        client_kwargs['aws_access_key_id'] = credentials.access_key
        client_kwargs['aws_secret_access_key'] = credentials.secret_key
        if credentials.token:
            client_kwargs['aws_session_token'] = credentials.token

    return boto3.client('connect', **client_kwargs)
