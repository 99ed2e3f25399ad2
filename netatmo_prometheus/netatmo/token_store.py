import os
import logging
import tempfile
import threading
import tomllib

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union

import tomli_w

from .exceptions import ConfigReadError, ConfigWriteError
from .utils import to_utc

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class CredentialRecord:
    """
    Durable OAuth2 client credentials and token state of a single account
    """
    client_id: str
    client_secret: str
    access_token: str = ''
    refresh_token: str = ''
    token_valid_until: datetime = EPOCH

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {}

        result['client_id'] = self.client_id
        result['client_secret'] = self.client_secret
        result['access_token'] = self.access_token
        result['refresh_token'] = self.refresh_token
        result['token_valid_until'] = self.token_valid_until

        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CredentialRecord':
        """
        Build record from decoded TOML document, raises ValueError on malformed input
        """
        for key in ('client_id', 'client_secret', 'refresh_token'):
            value = data.get(key)
            if not isinstance(value, str) or not value:
                raise ValueError(f'{key} is missing or not a string')

        access_token = data.get('access_token', '')
        if not isinstance(access_token, str):
            raise ValueError('access_token is not a string')

        valid_until = data.get('token_valid_until', EPOCH)
        if not isinstance(valid_until, datetime):
            raise ValueError('token_valid_until is not a datetime')

        return cls(client_id=data['client_id'],
                   client_secret=data['client_secret'],
                   access_token=access_token,
                   refresh_token=data['refresh_token'],
                   token_valid_until=to_utc(valid_until))


class TokenStore:
    """
    Owns the credential file, the TOML document is rewritten wholesale on
    every save
    """
    FILE_MODE = 0o600
    path: Path
    record: Optional[CredentialRecord] = None

    def __init__(self, path: Union[str, Path]):
        if isinstance(path, Path):
            self.path = path
        else:
            self.path = Path(path)
        self.record = None
        self._lock = threading.RLock()

    def load(self) -> CredentialRecord:
        """
        Load credential record from file.
        Missing or malformed file raises ConfigReadError, nothing is repaired
        """
        try:
            with open(self.path, 'rb') as f:
                data = tomllib.load(f)
        except OSError as e:
            raise ConfigReadError(f'Cant read credential file {self.path}: {e}', self.path) from e
        except tomllib.TOMLDecodeError as e:
            raise ConfigReadError(f'Invalid TOML in credential file {self.path}: {e}', self.path) from e

        try:
            record = CredentialRecord.from_dict(data)
        except ValueError as e:
            raise ConfigReadError(f'Malformed credential file {self.path}: {e}', self.path) from e

        with self._lock:
            self.record = record
        logger.debug(f'Loaded credentials from {self.path} token valid until: {record.token_valid_until}')
        return record

    def save(self, record: CredentialRecord) -> None:
        """
        Replace the persisted record with the given one

        :param record: credential record to persist
        """
        with self._lock:
            self._write(record)
            self.record = record

    def update(self, **fields: Any) -> CredentialRecord:
        """
        Read-modify-write of the held record under the store lock

        :param fields: CredentialRecord fields to replace
        :return: the persisted record
        """
        with self._lock:
            if self.record is None:
                raise ConfigWriteError(f'No credential record loaded for {self.path}', self.path)
            record = replace(self.record, **fields)
            self.save(record)
            return record

    def _write(self, record: CredentialRecord) -> None:
        tmp_name = ''
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f'.{self.path.name}.',
                                            dir=self.path.parent)
            with os.fdopen(fd, 'wb') as f:
                tomli_w.dump(record.to_dict(), f)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_name, self.FILE_MODE)
            os.replace(tmp_name, self.path)
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise ConfigWriteError(f'Cant write credential file {self.path}: {e}', self.path) from e
        logger.debug(f'Saved credentials to {self.path}')
