"""
rewire-pipeline and test-pipeline commands.
"""

from ..config.command_config import RewirePipelineConfig
from ..core.pipeline_test import PipelineTestRequest, PipelineTestService, format_report
from ..exceptions import APIError, MigrationError
from .common import create_ado_client, create_logger


def run_rewire_pipeline(args, parser=None):
    """Point an Azure Pipelines definition at a GitHub repository.

    With --dry-run the pipeline is only rewired long enough to queue one
    build, restored straight away, and the build is then monitored.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed arguments: ado_org, ado_team_project, ado_pipeline or
        ado_pipeline_id, github_org, github_repo, service_connection_id,
        dry_run, monitor_timeout_minutes, ado_pat, ado_server_url,
        target_api_url.
    parser : argparse.ArgumentParser, optional
        Unused; accepted for a uniform command signature.

    Returns
    -------
    PipelineTestResult or None
        The dry-run result; None for a regular rewire.

    Raises
    ------
    ManualRestorationRequiredError
        If a dry-run could not put the pipeline back.
    """
    config = RewirePipelineConfig.from_args(args)
    logger = create_logger(config)
    ado_client = create_ado_client(config, logger)

    if config.dry_run:
        return _run_dry_run(config, logger, ado_client)

    logger.info("Rewiring Pipeline to GitHub repo...")

    if config.ado_pipeline_id is not None:
        pipeline_id = config.ado_pipeline_id
        logger.info(f"Using provided pipeline ID: {pipeline_id}")
    else:
        logger.info(f"Looking up pipeline ID for: {config.ado_pipeline}")
        try:
            pipeline_id = ado_client.get_pipeline_id(config.ado_org, config.ado_team_project, config.ado_pipeline)
        except APIError as e:
            if e.status_code != 404:
                raise
            logger.error(f"Pipeline lookup failed: {e}")
            raise MigrationError("Unable to find the specified pipeline. Please verify the pipeline name and try again.")
        logger.info(f"Using resolved pipeline ID: {pipeline_id}")

    pipeline = ado_client.get_pipeline(config.ado_org, config.ado_team_project, pipeline_id)
    ado_client.rewire_pipeline_to_github(
        config.ado_org, config.ado_team_project, pipeline_id,
        pipeline['default_branch'], pipeline['clean'], pipeline['checkout_submodules'],
        config.github_org, config.github_repo, config.service_connection_id,
        original_triggers=pipeline['triggers'],
        target_api_url=config.target_api_url
    )
    logger.success("Successfully rewired pipeline")
    return None


def run_test_pipeline(args, parser=None):
    """Dry-run a pipeline against GitHub; same as rewire-pipeline --dry-run."""
    args.dry_run = True
    return run_rewire_pipeline(args, parser)


def _run_dry_run(config, logger, ado_client):
    logger.info("Starting dry-run mode: Testing pipeline rewiring to GitHub...")
    logger.info(f"Monitor timeout: {config.monitor_timeout_minutes} minutes")

    request = PipelineTestRequest(
        ado_org=config.ado_org,
        ado_team_project=config.ado_team_project,
        github_org=config.github_org,
        github_repo=config.github_repo,
        service_connection_id=config.service_connection_id,
        pipeline_name=config.ado_pipeline,
        pipeline_id=config.ado_pipeline_id,
        target_api_url=config.target_api_url,
        monitor_timeout_minutes=config.monitor_timeout_minutes
    )
    result = PipelineTestService(ado_client, logger).test_pipeline(request)

    for line in format_report(result).splitlines():
        logger.info(line)

    if result.is_successful:
        logger.success("✅ Pipeline test PASSED - Build completed successfully")
    elif result.is_failed:
        logger.error("❌ Pipeline test FAILED - Build completed with failures")
    elif result.is_timed_out:
        logger.warning(f"⚠️ Pipeline test TIMED OUT - Build did not finish within {config.monitor_timeout_minutes} minutes")
    elif result.error_message:
        logger.error(f"❌ Pipeline test FAILED - Error: {result.error_message}")
    else:
        logger.warning("⚠️ Pipeline test completed with unknown result")

    return result
