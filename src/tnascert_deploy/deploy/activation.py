"""Assigning a certificate to the UI, FTP and application services."""

import logging

from tnascert_deploy.api.schemas import (
    AppConfig,
    AppSummary,
    parse_app_config,
    parse_app_list,
    parse_service_certificate,
)
from tnascert_deploy.config import DeployConfig
from tnascert_deploy.exceptions import ActivationError
from tnascert_deploy.protocol.client import ApiClient, ApiError
from tnascert_deploy.protocol.constants import (
    METHOD_APP_CONFIG,
    METHOD_APP_QUERY,
    METHOD_APP_UPDATE,
    METHOD_FTP_CONFIG,
    METHOD_FTP_UPDATE,
    METHOD_GENERAL_CONFIG,
    METHOD_GENERAL_UPDATE,
)
from tnascert_deploy.protocol.jobs import JobMonitor, log_job_progress

logger = logging.getLogger(__name__)


def _service_certificate(client: ApiClient, config: DeployConfig, method: str, key: str) -> int | None:
    try:
        response = client.call(method, config.timeout_seconds, [])
        return parse_service_certificate(response, key)
    except (ApiError, ValueError) as error:
        raise ActivationError(f"{method} query failed, {error}") from error


def current_ui_certificate(client: ApiClient, config: DeployConfig) -> int | None:
    """Identifier of the certificate the UI currently serves."""
    return _service_certificate(client, config, METHOD_GENERAL_CONFIG, "ui_certificate")


def current_ftp_certificate(client: ApiClient, config: DeployConfig) -> int | None:
    """Identifier of the certificate the FTP service currently uses."""
    return _service_certificate(client, config, METHOD_FTP_CONFIG, "ssltls_certificate")


def activate_ui(client: ApiClient, config: DeployConfig, certificate_id: int) -> bool:
    """Make *certificate_id* the active UI certificate."""
    try:
        client.call(METHOD_GENERAL_UPDATE, config.timeout_seconds, [{"ui_certificate": certificate_id}])
    except ApiError as error:
        raise ActivationError(f"{METHOD_GENERAL_UPDATE} of ui_certificate failed, {error}") from error
    logger.info("Certificate id %d is now the active UI certificate", certificate_id)
    return True


def activate_ftp(client: ApiClient, config: DeployConfig, certificate_id: int) -> bool:
    """Make *certificate_id* the FTP service certificate."""
    try:
        client.call(METHOD_FTP_UPDATE, config.timeout_seconds, [{"ssltls_certificate": certificate_id}])
    except ApiError as error:
        raise ActivationError(f"updating the FTP service certificate failed, {error}") from error
    logger.info("Certificate id %d is now the active FTP service certificate", certificate_id)
    return True


def list_apps(client: ApiClient, config: DeployConfig) -> list[AppSummary]:
    """Query the deployed apps, restricted to ``config.app_name`` when set."""
    try:
        response = client.call(METHOD_APP_QUERY, config.timeout_seconds, [])
        apps = parse_app_list(response)
    except (ApiError, ValueError) as error:
        raise ActivationError(f"app query failed, {error}") from error

    if config.debug:
        logger.debug("App query response: %s", response)

    if config.app_name is None:
        return apps

    selected = [app for app in apps if app.name == config.app_name]
    if not selected:
        logger.info("App %s is not deployed, no app certificate will be updated", config.app_name)
    return selected


def fetch_app_config(client: ApiClient, config: DeployConfig, app: AppSummary) -> AppConfig:
    try:
        response = client.call(METHOD_APP_CONFIG, config.timeout_seconds, [app.id])
        return parse_app_config(response)
    except (ApiError, ValueError) as error:
        raise ActivationError(f"app config query for {app.name} failed, {error}") from error


def apps_needing_update(client: ApiClient, config: DeployConfig, certificate_id: int) -> list[str]:
    """Names of the targeted apps not yet using *certificate_id*."""
    stale = []
    for app in list_apps(client, config):
        app_config = fetch_app_config(client, config, app)
        if app_config.has_certificate_settings and app_config.certificate_id != certificate_id:
            stale.append(app.name)
    return stale


def activate_apps(
    client: ApiClient,
    config: DeployConfig,
    certificate_id: int,
    monitor: JobMonitor,
) -> list[str]:
    """Point every targeted app with certificate settings at *certificate_id*.

    Apps already using the certificate are left alone. Only the network
    ``certificate_id`` is changed; other network settings are sent back as
    they were.

    Returns:
        Names of the apps that were updated
    """
    updated = []
    for app in list_apps(client, config):
        app_config = fetch_app_config(client, config, app)

        if not app_config.has_certificate_settings:
            logger.info("App %s has no certificate settings, skipping", app.name)
            continue
        if app_config.certificate_id == certificate_id:
            logger.debug("App %s already uses certificate id %d", app.name, certificate_id)
            continue

        network = dict(app_config.network)
        network["certificate_id"] = certificate_id
        params = [app.name, {"values": {"network": network}}]

        try:
            job = client.call_with_job(METHOD_APP_UPDATE, params, log_job_progress)
        except ApiError as error:
            raise ActivationError(f"failed to update the certificate of app {app.name}, {error}") from error

        logger.info("Started the app update job for %s with ID: %d", app.name, job.id)
        monitor.wait(job)
        logger.info("Updated the certificate for app %s to id %d", app.name, certificate_id)
        updated.append(app.name)

    return updated
