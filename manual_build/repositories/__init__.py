from .artifact_repository import ArtifactRepository

__all__ = ["ArtifactRepository"]
