"""
System-wide Pydantic models: evaluator configuration and activation snapshots.
"""

import logging
import os
from typing import Dict, Literal, Mapping, Optional

from pydantic import BaseModel, Field, PositiveInt

# Configure logger
logger = logging.getLogger(__name__)

ENV_PREFIX = "BLOCKCONTEXT_"

LogLevel = Literal['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']

ActivationKind = Literal['top', 'method', 'block']


# --- Configuration ---

class EvaluatorConfig(BaseModel):
    """
    Evaluator configuration.
    Built from CLI arguments or from BLOCKCONTEXT_* environment variables.
    """
    max_call_depth: PositiveInt = 64 # Nested invocations allowed before evaluation is aborted
    log_level: LogLevel = 'WARNING'
    log_file: Optional[str] = None
    echo_results: bool = True # REPL prints the value of each evaluated expression

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'EvaluatorConfig':
        """
        Builds a config from environment variables.

        Recognised variables: BLOCKCONTEXT_MAX_CALL_DEPTH, BLOCKCONTEXT_LOG_LEVEL,
        BLOCKCONTEXT_LOG_FILE, BLOCKCONTEXT_ECHO_RESULTS. Unset variables keep the
        model defaults.

        Args:
            environ: Mapping to read from. Defaults to os.environ.

        Returns:
            A validated EvaluatorConfig.

        Raises:
            pydantic.ValidationError: If a variable holds an invalid value.
        """
        environ = os.environ if environ is None else environ
        values: Dict[str, str] = {}
        for field_name in cls.model_fields:
            env_key = ENV_PREFIX + field_name.upper()
            if env_key in environ:
                values[field_name] = environ[env_key]
        if 'log_level' in values:
            values['log_level'] = values['log_level'].upper()
        logger.debug(f"EvaluatorConfig.from_env: using {sorted(values)}")
        return cls(**values)


# --- Inspection ---

class ActivationSnapshot(BaseModel):
    """
    Printable view of one activation record and its lexical chain.
    Variable values are rendered with the printer so the snapshot is plain data.
    """
    label: str
    kind: ActivationKind
    returned: bool = False
    variables: Dict[str, str] = Field(default_factory=dict)
    parent: Optional['ActivationSnapshot'] = None

    def chain_labels(self) -> list:
        """Labels from this activation outwards."""
        labels = []
        snapshot: Optional[ActivationSnapshot] = self
        while snapshot is not None:
            labels.append(snapshot.label)
            snapshot = snapshot.parent
        return labels


ActivationSnapshot.model_rebuild()
