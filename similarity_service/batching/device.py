"""Device selection for the similarity model.

The engine only supports a binary choice: CPU, or the first CUDA device when
one is available.
"""

import torch
import structlog

from ..errors import InitializationError

logger = structlog.get_logger("similarity_service.device")


def select_device(use_cpu: bool) -> torch.device:
    """Select the compute device for a model load.

    ``use_cpu`` forces the CPU. Otherwise CUDA device 0 is used when present,
    falling back to the CPU with a warning.
    """
    if use_cpu:
        device = torch.device("cpu")
    else:
        try:
            cuda_available = torch.cuda.is_available()
        except RuntimeError as e:
            raise InitializationError(f"CUDA probe failed: {e}") from e

        if cuda_available:
            device = torch.device("cuda", 0)
        else:
            logger.warning("GPU requested but not available, falling back to CPU")
            device = torch.device("cpu")

    logger.info("Device selected", device=str(device), use_cpu=use_cpu)
    return device

