import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Iterator, List, Mapping, Type

from pydantic import ValidationError as PydanticValidationError

from ..errors import DiscourseError, ValidationError
from ..models import OperationResult, SessionState
from .params import OperationParams

if TYPE_CHECKING:
    from .agent import ForumAgentService

logger = logging.getLogger(__name__)

Handler = Callable[
    ["ForumAgentService", SessionState, Any], Awaitable[Dict[str, Any]]
]


@dataclass(frozen=True)
class Operation:
    """One named operation: description, parameter schema and handler."""

    name: str
    description: str
    params_model: Type[OperationParams]
    handler: Handler
    error_prefix: str

    def input_schema(self) -> Dict[str, Any]:
        """JSON schema of the accepted parameters (as advertised to MCP clients)."""
        return self.params_model.model_json_schema()

    def validate(self, raw_params: Mapping[str, Any] | None) -> OperationParams:
        """Coerce and validate raw parameters.

        Raises:
            ValidationError: the parameters do not match the declared schema.
        """
        try:
            return self.params_model.model_validate(dict(raw_params or {}))
        except PydanticValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'arguments'}: {err['msg']}"
                for err in e.errors()
            )
            raise ValidationError(f"Invalid arguments for {self.name}: {problems}") from e

    def failure_message(self, params: OperationParams, error: BaseException) -> str:
        return f"{self.error_prefix.format(**params.model_dump())}: {error}"


class OperationRegistry:
    """Declarative table of operations consumed by a single dispatch routine."""

    def __init__(self) -> None:
        self._operations: Dict[str, Operation] = {}

    def operation(
        self,
        name: str,
        description: str,
        params_model: Type[OperationParams],
        error_prefix: str,
    ) -> Callable[[Handler], Handler]:
        """Decorator registering an async handler under ``name``."""

        def register(handler: Handler) -> Handler:
            if name in self._operations:
                raise ValueError(f"Operation already registered: {name}")
            self._operations[name] = Operation(
                name=name,
                description=description,
                params_model=params_model,
                handler=handler,
                error_prefix=error_prefix,
            )
            return handler

        return register

    def __iter__(self) -> Iterator[Operation]:
        return iter(self._operations.values())

    def __contains__(self, name: object) -> bool:
        return name in self._operations

    def names(self) -> List[str]:
        return list(self._operations)

    def get(self, name: str) -> Operation | None:
        return self._operations.get(name)

    async def dispatch(
        self,
        agent: "ForumAgentService",
        state: SessionState,
        name: str,
        raw_params: Mapping[str, Any] | None,
    ) -> OperationResult:
        """Validate parameters, run the handler and shape its outcome.

        Never raises: validation problems and handler failures both come back
        as failure results.
        """
        operation = self._operations.get(name)
        if operation is None:
            logger.warning("Unknown operation requested: %s", name)
            return OperationResult.failure(f"Unknown operation: {name}", kind="request")

        try:
            params = operation.validate(raw_params)
        except ValidationError as e:
            logger.info("Rejected %s call for session %s: %s", name, state.session_id, e)
            return OperationResult.failure(str(e), kind="validation")

        logger.info("Running %s for session %s", name, state.session_id)
        try:
            payload = await operation.handler(agent, state, params)
        except DiscourseError as e:
            logger.warning("%s failed for session %s: %s", name, state.session_id, e)
            return OperationResult.failure(operation.failure_message(params, e))
        except Exception as e:
            logger.exception("Unexpected error in %s: %s", name, e)
            return OperationResult.failure(operation.failure_message(params, e))

        return OperationResult.success(payload)
