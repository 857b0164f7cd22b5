#  MIT License
#
#  Copyright (c) 2021-2024. Aleksandr Serdiukov, Anton Zamyatin, Aleksandr Sinitsyn, Vitalii Dravgelis and Computer Technologies Laboratory ITMO University team.
#
#  Permission is hereby granted, free of charge, to any person obtaining a copy
#  of this software and associated documentation files (the "Software"), to deal
#  in the Software without restriction, including without limitation the rights
#  to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
#  copies of the Software, and to permit persons to whom the Software is
#  furnished to do so, subject to the following conditions:
#
#  The above copyright notice and this permission notice shall be included in all
#  copies or substantial portions of the Software.
#
#  THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
#  IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
#  FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
#  AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
#  LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
#  OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
#  SOFTWARE.

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


class LongTaskExecutor(object):
    """
    Runs block loads and spline builds off the owner thread.
    execute_long_running_task() blocks the caller until the task is done, so the result is consumed
    on the caller's thread and worker failures are re-raised there.
    """

    def __init__(self, multithreading_pool_size: int = 8) -> None:
        super().__init__()
        self.multithreading_pool_size: int = multithreading_pool_size
        self.pool: ThreadPoolExecutor = ThreadPoolExecutor(
            max_workers=multithreading_pool_size,
            thread_name_prefix='hilift-long-task'
        )

    def submit(self, fn: Callable[..., T], *args: Any, label: str = '', **kwargs: Any) -> 'Future[T]':
        if label:
            logger.debug(f"Submitting long task: {label}")
        return self.pool.submit(fn, *args, **kwargs)

    def execute_long_running_task(self, fn: Callable[..., T], label: str, *args: Any, **kwargs: Any) -> T:
        logger.info(f"{label}...")
        future = self.submit(fn, *args, label=label, **kwargs)
        try:
            return future.result()
        except Exception:
            logger.exception(f"Long task failed: {label}")
            raise

    def shutdown(self, wait: bool = True) -> None:
        self.pool.shutdown(wait=wait)

    def __enter__(self) -> 'LongTaskExecutor':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown(wait=True)
