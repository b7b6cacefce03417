import asyncio

from loguru import logger


async def retry_with_backoff(func, max_retries: int = 3, base_delay: float = 1.0, retry_on: tuple = (Exception,)):
    """Retry an idempotent coroutine function with exponential backoff"""
    for attempt in range(max_retries):
        try:
            return await func()
        except retry_on as e:
            if attempt == max_retries - 1:
                logger.error(f"Max retries exceeded for function {getattr(func, '__name__', func)}")
                raise e

            delay = base_delay * (2 ** attempt)
            logger.warning(f"Retry attempt {attempt + 1} failed, retrying in {delay}s: {str(e)}")
            await asyncio.sleep(delay)
