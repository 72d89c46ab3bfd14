"""
Gateways package: async, domain-shaped wrappers around Bitbucket, Jira and Spinnaker.
"""

from .base import DeploymentGateway, SourceControlGateway, TrackerGateway
from .bitbucket import BitbucketGateway
from .jira import JiraGateway
from .spinnaker import SpinnakerGateway

__all__ = [
    "SourceControlGateway",
    "TrackerGateway",
    "DeploymentGateway",
    "BitbucketGateway",
    "JiraGateway",
    "SpinnakerGateway",
]
