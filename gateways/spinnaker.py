"""
Spinnaker managed-delivery deployment gateway.

Reads the artifact versions of one application environment over GraphQL. CURRENT versions are
what is deployed now; PREVIOUS versions are earlier releases of the same environment.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from models import DeploymentState
from transport.rest import GraphQLClient

logger = logging.getLogger(__name__)

ENVIRONMENT_STATES_QUERY = """
query MdEnvironmentStatesQuery($appName: String!, $environments: [String!]!) {
  application(appName: $appName) {
    name
    environments(names: $environments) {
      name
      state {
        artifacts {
          reference
          versions(statuses: [CURRENT, PREVIOUS]) {
            version
            buildNumber
            status
            gitMetadata {
              commit
              project
              repoName
              branch
            }
          }
        }
      }
    }
  }
}
"""

CURRENT = "CURRENT"
PREVIOUS = "PREVIOUS"


@dataclass(frozen=True)
class DeployedVersion:
    status: str
    build_number: str
    commit: str
    repository_id: Optional[str]

    @property
    def sort_key(self) -> Tuple[int, Any]:
        # numeric build numbers sort numerically and after non-numeric ones
        if self.build_number.isdigit():
            return (1, int(self.build_number))
        return (0, self.build_number)


def _parse_versions(data: Dict[str, Any]) -> List[DeployedVersion]:
    application = data.get("application") or {}
    versions: List[DeployedVersion] = []
    for env in application.get("environments") or []:
        for artifact in ((env.get("state") or {}).get("artifacts") or []):
            for version in artifact.get("versions") or []:
                git = version.get("gitMetadata") or {}
                status = version.get("status")
                if status not in (CURRENT, PREVIOUS) or not git.get("commit"):
                    continue
                repo = f"{git['project']}/{git['repoName']}" if git.get("project") and git.get("repoName") else None
                versions.append(DeployedVersion(status, str(version.get("buildNumber") or ""), git["commit"], repo))
    return versions


class SpinnakerGateway:
    """Deployment gateway backed by the Spinnaker managed-delivery GraphQL API."""

    def __init__(self, client: GraphQLClient):
        self.client = client

    async def deployed_versions(self, application_name: str, environment_name: str) -> List[DeployedVersion]:
        data = await self.client.query(ENVIRONMENT_STATES_QUERY, {"appName": application_name, "environments": [environment_name]})
        versions = _parse_versions(data)
        logger.debug("Spinnaker reported %d deployed versions for %s/%s", len(versions), application_name, environment_name)
        return versions

    @staticmethod
    def _latest(versions: List[DeployedVersion]) -> Optional[DeployedVersion]:
        return max(versions, key=lambda v: v.sort_key) if versions else None

    @classmethod
    def select(cls, versions: List[DeployedVersion]) -> Tuple[Optional[DeployedVersion], Optional[DeployedVersion]]:
        """The highest CURRENT version and the highest PREVIOUS version below it."""
        current = cls._latest([v for v in versions if v.status == CURRENT])
        previous = [v for v in versions if v.status == PREVIOUS]
        if current is not None:
            previous = [v for v in previous if v.sort_key < current.sort_key]
        return current, cls._latest(previous)

    async def deployment_state(self, application_name: str, environment_name: str) -> DeploymentState:
        current, previous = self.select(await self.deployed_versions(application_name, environment_name))
        repositories = sorted({v.repository_id for v in (current, previous) if v is not None and v.repository_id})
        return DeploymentState(
            current_revision=current.commit if current else None,
            previous_revision=previous.commit if previous else None,
            repositories=tuple(repositories),
        )

    async def current_revision(self, application_name: str, environment_name: str) -> Optional[str]:
        return (await self.deployment_state(application_name, environment_name)).current_revision

    async def previous_revision(self, application_name: str, environment_name: str) -> Optional[str]:
        return (await self.deployment_state(application_name, environment_name)).previous_revision

    async def repositories(self, application_name: str, environment_name: str) -> List[str]:
        """Repositories of the current and previous versions."""
        return list((await self.deployment_state(application_name, environment_name)).repositories)
