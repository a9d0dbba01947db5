import boto3
import pytest
from botocore.stub import Stubber


@pytest.fixture
def ecr_client():
    return boto3.client(
        'ecr',
        region_name='us-east-1',
        aws_access_key_id='testing',
        aws_secret_access_key='testing',
    )


@pytest.fixture
def stubber(ecr_client):
    with Stubber(ecr_client) as stub:
        yield stub
        stub.assert_no_pending_responses()
