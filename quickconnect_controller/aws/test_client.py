import unittest
from unittest.mock import MagicMock, patch
import os
from .client import aws_config, get_credentials, get_connect_client

class TestAWSClient(unittest.TestCase):
    def mock_session(self, token="MOCK_TOKEN"):
        mock_session = MagicMock()
        mock_credentials = MagicMock()
        mock_credentials.access_key = "MOCK_ACCESS_KEY"
        mock_credentials.secret_key = "MOCK_SECRET_KEY"
        mock_credentials.token = token
        mock_session.get_credentials.return_value = mock_credentials
        return mock_session

    def test_get_credentials_irsa(self):
        """Test that IRSA credentials are properly detected and used"""
        with patch('boto3.Session', return_value=self.mock_session()):
            credentials = get_credentials()
            self.assertIsNotNone(credentials)
            self.assertEqual(credentials.access_key, "MOCK_ACCESS_KEY")
            self.assertEqual(credentials.token, "MOCK_TOKEN")

    def test_get_credentials_none(self):
        """Test handling when no credentials are found"""
        mock_session = MagicMock()
        mock_session.get_credentials.return_value = None

        with patch('boto3.Session', return_value=mock_session):
            self.assertIsNone(get_credentials())

    def test_get_connect_client_with_region(self):
        """Test client creation with explicit region"""
        with patch('boto3.Session', return_value=self.mock_session()), \
             patch('boto3.client') as mock_client:
            get_connect_client(region="eu-west-2")
            mock_client.assert_called_once()
            self.assertEqual(mock_client.call_args[0][0], 'connect')
            call_kwargs = mock_client.call_args[1]
            self.assertEqual(call_kwargs['region_name'], "eu-west-2")
            self.assertEqual(call_kwargs['aws_access_key_id'], "MOCK_ACCESS_KEY")
            self.assertEqual(call_kwargs['aws_secret_access_key'], "MOCK_SECRET_KEY")
            self.assertEqual(call_kwargs['aws_session_token'], "MOCK_TOKEN")
            self.assertIs(call_kwargs['config'], aws_config)

    def test_get_connect_client_default_region(self):
        """Test client creation with region from environment"""
        with patch('boto3.Session', return_value=self.mock_session(token=None)), \
             patch('boto3.client') as mock_client, \
             patch.dict(os.environ, {'AWS_DEFAULT_REGION': 'us-east-1'}):
            get_connect_client()
            call_kwargs = mock_client.call_args[1]
            self.assertEqual(call_kwargs['region_name'], "us-east-1")
            self.assertNotIn('aws_session_token', call_kwargs)

    def test_get_connect_client_without_credentials(self):
        mock_session = MagicMock()
        mock_session.get_credentials.return_value = None

        with patch('boto3.Session', return_value=mock_session), \
             patch('boto3.client') as mock_client, \
             patch.dict(os.environ, {}, clear=True):
            get_connect_client()
            call_kwargs = mock_client.call_args[1]
            self.assertNotIn('region_name', call_kwargs)
            self.assertNotIn('aws_access_key_id', call_kwargs)

    def test_sdk_retries_disabled(self):
        self.assertEqual(aws_config.retries['total_max_attempts'], 1)

if __name__ == '__main__':
    unittest.main()
