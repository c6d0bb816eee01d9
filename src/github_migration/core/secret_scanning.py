"""
Copies secret scanning alert resolutions from a source repository to the
matching alerts of its migrated copy.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..clients.github_client import GitHubClient
from ..utils.logging_config import MigrationLogger

LOCATION_FIELDS = ('path', 'start_line', 'end_line', 'start_column', 'end_column', 'blob_sha')


@dataclass
class AlertWithLocations:
    alert: Dict[str, Any]
    locations: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def number(self) -> int:
        return self.alert['number']

    @property
    def state(self) -> Optional[str]:
        return self.alert.get('state')

    @property
    def resolution(self) -> Optional[str]:
        return self.alert.get('resolution')

    @property
    def resolution_comment(self) -> Optional[str]:
        return self.alert.get('resolution_comment')


def is_matching_location(source_location: Dict[str, Any], target_locations: List[Dict[str, Any]]) -> bool:
    # Location order is not stable across the two APIs, so compare against all of them
    return any(
        all(source_location.get(name) == target.get(name) for name in LOCATION_FIELDS)
        for target in target_locations
    )


def match_target_alert(source: AlertWithLocations, targets: List[AlertWithLocations],
                       logger: Optional[MigrationLogger] = None) -> Optional[AlertWithLocations]:
    """Find the target alert with the same secret type, secret and locations as source."""
    for target in targets:
        if (source.alert.get('secret_type') != target.alert.get('secret_type')
                or source.alert.get('secret') != target.alert.get('secret')):
            continue

        if logger:
            logger.verbose(f"Secret type and value match between source:{source.number} and target:{target.number}")

        if all(is_matching_location(location, target.locations) for location in source.locations):
            return target

    return None


class SecretScanningAlertService:
    """Aligns the state and resolution of target secret scanning alerts with the source."""

    def __init__(self, source_client: GitHubClient, target_client: GitHubClient, logger: MigrationLogger):
        self.source_client = source_client
        self.target_client = target_client
        self.logger = logger

    def _get_alerts_with_locations(self, client: GitHubClient, org: str, repo: str) -> List[AlertWithLocations]:
        return [
            AlertWithLocations(alert, client.get_secret_scanning_alert_locations(org, repo, alert['number']))
            for alert in client.get_secret_scanning_alerts(org, repo)
        ]

    def migrate_secret_scanning_alerts(self, source_org: str, source_repo: str, target_org: str,
                                       target_repo: str, dry_run: bool = False) -> Dict[str, int]:
        """
        Copy resolutions of closed source alerts onto their target counterparts.

        Returns:
            Counters: updated, already_aligned, unmatched, open
        """
        self.logger.info(
            f"Migrating Secret Scanning Alerts from '{source_org}/{source_repo}' to '{target_org}/{target_repo}'"
        )

        source_alerts = self._get_alerts_with_locations(self.source_client, source_org, source_repo)
        target_alerts = self._get_alerts_with_locations(self.target_client, target_org, target_repo)

        self.logger.info(f"Source {source_org}/{source_repo} secret alerts found: {len(source_alerts)}")
        self.logger.info(f"Target {target_org}/{target_repo} secret alerts found: {len(target_alerts)}")

        stats = {'updated': 0, 'already_aligned': 0, 'unmatched': 0, 'open': 0}

        self.logger.info("Matching secret resolutions from source to target repository")
        for source in source_alerts:
            self.logger.info(f"Processing source secret {source.number}")

            if source.state == 'open':
                self.logger.info("  secret alert is still open, nothing to do")
                stats['open'] += 1
                continue

            self.logger.info("  secret is resolved, looking for matching secret in target...")
            target = match_target_alert(source, target_alerts, self.logger)

            if target is None:
                self.logger.warning(
                    f"  failed to locate a matching secret to source secret {source.number} in {target_org}/{target_repo}"
                )
                stats['unmatched'] += 1
                continue

            self.logger.info(f"  source secret alert matched alert to {target.number} in {target_org}/{target_repo}.")

            if source.resolution == target.resolution and source.state == target.state:
                self.logger.info("  source and target alerts are already aligned.")
                stats['already_aligned'] += 1
                continue

            if dry_run:
                self.logger.info(
                    f"  executing in dry run mode! Target alert {target.number} would have been updated "
                    f"to state:{source.state} and resolution:{source.resolution}"
                )
                continue

            self.logger.info(
                f"  updating target alert:{target.number} to state:{source.state} and resolution:{source.resolution}"
            )
            self.target_client.update_secret_scanning_alert(
                target_org, target_repo, target.number, source.state, source.resolution, source.resolution_comment
            )
            self.logger.success(f"  target alert successfully updated to {source.resolution}.")
            stats['updated'] += 1

        return stats
