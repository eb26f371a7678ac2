"""Client for the remote language-classification service."""

from pagesync.classifier.client import ClassifierClient, Classification

__all__ = ["ClassifierClient", "Classification"]
