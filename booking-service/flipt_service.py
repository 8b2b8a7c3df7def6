import logging
from typing import Optional
import flipt
from opentelemetry import trace
from flipt.evaluation import EvaluationRequest

from config import Settings

logger = logging.getLogger(__name__)


class FliptService:
    """Service for interacting with Flipt feature flags."""

    def __init__(self, settings: Settings, client=None):
        self.settings = settings
        self.client = client
        self.tracer = trace.get_tracer(__name__)
        if self.client is None and settings.flipt_enabled:
            self._initialize_client()

    def _initialize_client(self):
        """Initialize Flipt client."""
        try:
            self.client = flipt.FliptClient(
                url=self.settings.flipt_url,
            )
            logger.info(f"Flipt client initialized: {self.settings.flipt_url}")
        except Exception as e:
            logger.error(f"Failed to initialize Flipt client: {e}")
            self.client = None

    def evaluate_boolean(
        self,
        flag_key: str,
        entity_id: str,
        context: dict = None,
        default: bool = False
    ) -> bool:
        """Evaluate a boolean flag."""
        with self.tracer.start_as_current_span("feature_flag.evaluation") as span:
            span.set_attribute("feature_flag.key", flag_key)
            span.set_attribute("feature_flag.type", "boolean")

            if not self.client:
                logger.warning(f"Flipt client not available, returning default for {flag_key}")
                return default

            try:
                result = self.client.evaluation.boolean(EvaluationRequest(
                    namespace_key=self.settings.flipt_namespace,
                    flag_key=flag_key,
                    entity_id=entity_id,
                    context=context or {}
                ))
                enabled = result.enabled
                span.set_attribute("feature_flag.result.variant", str(enabled).lower())
                logger.debug(f"Flag '{flag_key}' evaluated to {enabled} (reason: {result.reason})")
                return enabled
            except Exception as e:
                logger.error(f"Error evaluating boolean flag '{flag_key}': {e}")
                span.set_attribute("error", True)
                span.set_attribute("error.message", str(e))
                return default

    def evaluate_batch_boolean(
        self,
        flag_keys: list[str],
        entity_id: str,
        context: dict = None,
        defaults: Optional[dict[str, bool]] = None,
    ) -> dict[str, bool]:
        """Evaluate several boolean flags for the same entity."""
        defaults = defaults or {}
        return {
            key: self.evaluate_boolean(key, entity_id, context, defaults.get(key, False))
            for key in flag_keys
        }
