"""
Client for the Gemini text/image models and the Veo video model.
"""
from .gemini import GeminiClient

__all__ = ["GeminiClient"]
