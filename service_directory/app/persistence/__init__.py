"""
Persistence layer for the Directory Service.
"""

from .memory import InMemoryFreelancerRepository
from .postgres import PostgresFreelancerRepository
from .repository import FreelancerRepository, Repository

__all__ = [
    "Repository",
    "FreelancerRepository",
    "InMemoryFreelancerRepository",
    "PostgresFreelancerRepository",
]
