"""Stage agents for the content-publishing pipeline."""

from src.agents.discovery import DiscoveryAgent
from src.agents.relevancy import RelevancyAgent
from src.agents.report import ReportAgent
from src.agents.post_type import PostTypeAgent
from src.agents.post_generator import PostGeneratorAgent
from src.agents.visuals import VisualsAgent
from src.agents.publisher import PublisherAgent

__all__ = [
    "DiscoveryAgent",
    "RelevancyAgent",
    "ReportAgent",
    "PostTypeAgent",
    "PostGeneratorAgent",
    "VisualsAgent",
    "PublisherAgent",
]
