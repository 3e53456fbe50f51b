"""Single-responsibility provisioning steps."""

from src.provisioning.actions.base import ProvisionAction, StepAction
from src.provisioning.actions.database import CreateDatabase
from src.provisioning.actions.dependencies import (
    BuildAssets,
    InstallComposerDependencies,
    InstallNodeDependencies,
)
from src.provisioning.actions.environment import (
    ConfigureEnvironment,
    ConfigureTrustedProxies,
    GenerateAppKey,
)
from src.provisioning.actions.integration import RegisterProject, ReloadProxy
from src.provisioning.actions.migrations import RunMigrations, RunPostInstallScripts
from src.provisioning.actions.repository import (
    CheckRepoAvailable,
    CloneRepository,
    CreateRepository,
    ForkRepository,
    GitHubAccount,
    ImportRepository,
)
from src.provisioning.actions.runtime import RestartRuntimeContainer, SetRuntimeVersion

__all__ = [
    "BuildAssets",
    "CheckRepoAvailable",
    "CloneRepository",
    "ConfigureEnvironment",
    "ConfigureTrustedProxies",
    "CreateDatabase",
    "CreateRepository",
    "ForkRepository",
    "GenerateAppKey",
    "GitHubAccount",
    "ImportRepository",
    "InstallComposerDependencies",
    "InstallNodeDependencies",
    "ProvisionAction",
    "RegisterProject",
    "ReloadProxy",
    "RestartRuntimeContainer",
    "RunMigrations",
    "RunPostInstallScripts",
    "SetRuntimeVersion",
    "StepAction",
]
