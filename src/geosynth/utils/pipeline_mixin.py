"""Step runner for processes that turn one input into a product in stages.

Each step is a `PipelineStep`; the first step is called with its own
keyword arguments only, every later step also receives the previous
step's output as its first argument.
"""

from __future__ import annotations

import logging
import time
from abc import abstractmethod
from typing import Any, Callable, NamedTuple, Sequence

from colorama import Fore, Style

logger = logging.getLogger(__name__)


class PipelineStep(NamedTuple):
    name: str
    func: Callable[..., Any]
    kwargs: dict[str, Any] = {}


class PipelineMixin:
    """Mixin for classes that run a fixed sequence of named steps.

    Usage:
        class MyPipeline(PipelineMixin):
            MODALITY = "geometry"

            def _load_pipeline(self, item):
                return [
                    PipelineStep('Parse', self.parse, {'item': item}),
                    PipelineStep('Render', self.render),
                ]

            def run(self, item):
                return self._execute_pipeline(item=item)

    A failing step is logged in red and its exception propagates.
    """

    # Label shown in step messages
    MODALITY: str = "pipeline"

    @abstractmethod
    def _load_pipeline(self, **kwargs: Any) -> Sequence[PipelineStep]:
        ...

    def _execute_pipeline(self, progress: bool = True, **pipeline_kwargs: Any) -> Any:
        """Run every step in order and return the last step's output.

        Args:
            progress: Log a line per completed step
            **pipeline_kwargs: Passed to _load_pipeline()
        """
        steps = list(self._load_pipeline(**pipeline_kwargs))
        width = max((len(step.name) for step in steps), default=0) + 4
        self.step_timings: dict[str, float] = {}

        result = None
        for index, step in enumerate(steps):
            started = time.perf_counter()
            try:
                result = step.func(**step.kwargs) if index == 0 else step.func(result, **step.kwargs)
            except Exception as e:
                logger.error(f'{self._label(step.name, width)}> {Fore.RED}Failed{Style.RESET_ALL}: {e}')
                raise
            self.step_timings[step.name] = time.perf_counter() - started
            if progress:
                logger.info(
                    f'{self._label(step.name, width)}> {Fore.GREEN}Complete{Style.RESET_ALL} '
                    f'({self.step_timings[step.name]:.2f}s)'
                )

        return result

    def _label(self, step_name: str, width: int) -> str:
        return f'{self.MODALITY.title()} -- {step_name} {"-" * (width - len(step_name))}'
