from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional


TARGETS = ('local', 'usb', 's3')


@dataclass
class S3Settings:
    """Object storage location for the s3 backend"""
    bucket: Optional[str] = None
    endpoint: Optional[str] = None
    prefix: str = ''
    region: Optional[str] = None

    @property
    def configured(self) -> bool:
        return bool(self.bucket)


@dataclass
class BackupPolicy:
    """Persisted automatic backup policy"""
    enabled: bool = False
    schedule: str = '0 2 * * *'
    retention: int = 7
    target: str = 'local'
    include: List[str] = field(default_factory=list)
    exclude: List[str] = field(default_factory=list)
    s3: S3Settings = field(default_factory=S3Settings)

    def __repr__(self):
        return f'<BackupPolicy enabled={self.enabled} schedule={self.schedule!r} target={self.target}>'


@dataclass
class ArchiveInfo:
    """An archive as seen on a backend"""
    name: str
    size_bytes: Optional[int] = None
    location: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_dict(self):
        return {
            'name': self.name,
            'size_bytes': self.size_bytes,
            'location': self.location,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
