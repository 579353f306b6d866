"""
Persistent LSM-Tree engine used by the persistent backend.
"""

from kvfacade.engine.engine import LSMEngine

__all__ = ["LSMEngine"]
