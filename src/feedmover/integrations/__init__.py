"""
Collaborators around the transfer core: environment lookup, credentials,
the downstream workflow trigger and operator notification.
"""

from feedmover.integrations.credentials import CredentialStore
from feedmover.integrations.environment import EnvironmentResolver
from feedmover.integrations.notify import Notifier
from feedmover.integrations.workflow import WorkflowTrigger

__all__ = [
    "CredentialStore",
    "EnvironmentResolver",
    "Notifier",
    "WorkflowTrigger",
]
