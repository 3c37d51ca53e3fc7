"""Join-credential channel: one writer, many readers, one run."""

import logging
import threading
from typing import Dict, Optional

from .errors import ChannelError

logger = logging.getLogger("kubestrap.channel")

JOIN_COMMAND = "join_command"


class JoinCredentialChannel:
    """Carries facts produced on the control plane to the workers.

    Each fact is written exactly once per run and never persisted. Reads
    do not wait: the orchestrator only starts a phase once every fact it
    requires has been published, so a read before publish is a bug and
    raises ChannelError.
    """

    def __init__(self, run_id: str):
        self.run_id = run_id
        self._facts: Dict[str, str] = {}
        self._producers: Dict[str, str] = {}
        self._lock = threading.Lock()

    def publish(self, value: str, producer: str, key: str = JOIN_COMMAND) -> None:
        """Publish a fact for this run.

        Raises:
            ChannelError: If the value is empty or the fact was already published
        """
        if not value or not value.strip():
            raise ChannelError(f"Refusing to publish an empty '{key}'")
        with self._lock:
            if key in self._facts:
                raise ChannelError(
                    f"'{key}' was already published by {self._producers[key]} in run {self.run_id}"
                )
            self._facts[key] = value.strip()
            self._producers[key] = producer
        logger.info(f"🔑 {producer} published '{key}' for run {self.run_id}")

    def read(self, key: str = JOIN_COMMAND) -> str:
        with self._lock:
            if key not in self._facts:
                raise ChannelError(f"'{key}' has not been published in run {self.run_id}")
            return self._facts[key]

    def is_published(self, key: str = JOIN_COMMAND) -> bool:
        with self._lock:
            return key in self._facts

    def producer(self, key: str = JOIN_COMMAND) -> Optional[str]:
        with self._lock:
            return self._producers.get(key)
