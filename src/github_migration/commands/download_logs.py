"""
download-logs command.

GitHub publishes the migration log a little after the migration finishes, so
the log URL is polled a bounded number of times before giving up.
"""

import time
from pathlib import Path
from typing import Callable, Optional, Tuple

import requests

from ..config.command_config import DownloadLogsConfig
from ..exceptions import APIError, MigrationError, NetworkError
from ..utils.logging_config import MigrationLogger
from .common import create_logger, create_target_github_client


def default_log_file_name(github_org: Optional[str], github_repo: Optional[str], migration_id: str) -> str:
    parts = [part for part in (github_org, github_repo, migration_id) if part]
    return f"migration-log-{'-'.join(parts)}.log"


def wait_for_log_url(fetch: Callable[[], Optional[Tuple[str, str, Optional[str]]]], logger: MigrationLogger,
                     max_attempts: int, retry_delay_seconds: int, not_found_message: str,
                     sleep: Optional[Callable[[float], None]] = None):
    """
    Call fetch until it returns a non-empty log URL.

    Returns:
        (log_url, migration_id, repository_name)

    Raises:
        MigrationError: If no migration exists or the URL never populates
    """
    sleep = sleep or time.sleep
    for attempt in range(1, max_attempts + 1):
        found = fetch()
        if found is None:
            raise MigrationError(not_found_message)
        if found[0]:
            return found
        if attempt < max_attempts:
            logger.info(f"Waiting for migration log to populate... (attempt {attempt}/{max_attempts})")
            sleep(retry_delay_seconds)

    raise MigrationError(f"Migration log for migration {found[1]} unavailable!")


def download_file(url: str, path: Path, timeout: int = 60) -> None:
    """
    Stream the log to a temporary file next to path and move it into place.

    Error messages never include the URL, which carries a storage signature.
    """
    partial = path.with_name(path.name + '.part')
    try:
        with requests.get(url, stream=True, timeout=timeout) as response:
            response.raise_for_status()
            with open(partial, 'wb') as f:
                for chunk in response.iter_content(chunk_size=65536):
                    f.write(chunk)
        partial.replace(path)
    except requests.exceptions.HTTPError as e:
        status = e.response.status_code if e.response is not None else None
        raise APIError(f"Failed to download migration log: HTTP {status}", status_code=status)
    except requests.exceptions.RequestException as e:
        raise NetworkError(f"Network error downloading migration log: {type(e).__name__}")
    finally:
        if partial.exists():
            partial.unlink()


def run_download_logs(args, parser=None):
    """Download the log of a repository migration.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed arguments: migration_id or github_org/github_repo,
        migration_log_file, overwrite, github_pat, target_api_url, verbose.
    parser : argparse.ArgumentParser, optional
        Unused; accepted for a uniform command signature.

    Returns
    -------
    pathlib.Path
        Path of the written log file.

    Side Effects
    ------------
    - Writes the log file, replacing it only with --overwrite

    Raises
    ------
    MigrationError
        If the file exists without --overwrite, the migration cannot be
        found, or its log never becomes available.
    """
    config = DownloadLogsConfig.from_args(args)
    logger = create_logger(config)

    logger.warning("Migration logs are only available for 24 hours after a migration finishes!")
    logger.info("Downloading migration logs...")

    if config.migration_log_file:
        _check_overwrite(Path(config.migration_log_file), config.overwrite, logger)

    github_client = create_target_github_client(config, logger)

    if config.migration_id:
        def fetch():
            status = github_client.get_migration(config.migration_id)
            return status.migration_log_url or '', config.migration_id, status.repository_name
    else:
        def fetch():
            found = github_client.get_migration_log_url(config.github_org, config.github_repo)
            if found is None:
                return None
            return found[0], found[1], config.github_repo

    log_url, migration_id, repo_name = wait_for_log_url(
        fetch, logger, config.max_attempts, config.retry_delay_seconds,
        f"Migration for repository {config.github_repo} not found!"
    )

    path = Path(config.migration_log_file or default_log_file_name(config.github_org, repo_name, migration_id))
    if not config.migration_log_file:
        _check_overwrite(path, config.overwrite, logger)

    logger.info(f"Downloading log for repository {repo_name} to {path}...")
    download_file(log_url, path)
    logger.success(f"Downloaded {repo_name} log to {path}.")
    return path


def _check_overwrite(path: Path, overwrite: bool, logger: MigrationLogger) -> None:
    if not path.exists():
        return
    if not overwrite:
        raise MigrationError(f"File {path} already exists!  Use --overwrite to overwrite this file.")
    logger.warning(f"Overwriting {path} due to --overwrite option.")
