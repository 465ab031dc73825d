"""
Field mapping between domain records and remote records.
"""

import logging
import math
import re
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from ..exceptions import TransformationError
from ..models.config import FieldCodec, FieldMapping, TableSyncSpec
from ..models.sync import DomainRecord, RemoteRecord

logger = logging.getLogger(__name__)

ISO_DATETIME_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}")
REMOTE_ID_PREFIX = "rec"
TRUE_LABEL = "Yes"
FALSE_LABEL = "No"


def get_nested_value(record: Dict[str, Any], path: str) -> Any:
    """Resolve a dotted path, returning None as soon as a segment is missing."""
    current: Any = record
    for key in path.split("."):
        if isinstance(current, dict):
            current = current.get(key)
        else:
            current = getattr(current, key, None)
        if current is None:
            return None
    return current


def set_nested_value(record: Dict[str, Any], path: str, value: Any) -> None:
    """Assign ``value`` at a dotted path, creating intermediate dicts."""
    keys = path.split(".")
    target = record
    for key in keys[:-1]:
        if not isinstance(target.get(key), dict):
            target[key] = {}
        target = target[key]
    target[keys[-1]] = value


def is_remote_id(value: Any) -> bool:
    return isinstance(value, str) and value.startswith(REMOTE_ID_PREFIX)


class FieldMapper:
    """
    Translates domain records to remote records and back.
    """

    @staticmethod
    def encode_value(value: Any, codec: Optional[FieldCodec] = None) -> Any:
        """
        Encode a local value for the remote store.

        Args:
            value: The value to encode
            codec: Optional explicit codec from the mapping entry

        Returns:
            Encoded value, or None when the value cannot be represented
        """
        if value is None:
            return None

        if isinstance(value, bool):
            return TRUE_LABEL if value else FALSE_LABEL
        if isinstance(value, datetime):
            if value.tzinfo is None:
                value = value.replace(tzinfo=timezone.utc)
            return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
        if isinstance(value, date):
            return value.isoformat()
        if isinstance(value, Decimal):
            value = float(value)
        if isinstance(value, float) and not math.isfinite(value):
            return None
        if isinstance(value, dict):
            raise TransformationError(f"Cannot encode a nested object {value!r}; map one of its fields instead")
        if isinstance(value, (list, tuple)):
            return ", ".join(str(FieldMapper.encode_value(item)) for item in value if item is not None)

        if codec == FieldCodec.TEXT:
            return str(value)
        if codec == FieldCodec.NUMBER:
            try:
                number = float(value)
            except (TypeError, ValueError):
                logger.warning(f"Cannot encode {value!r} as a number")
                return None
            return number if math.isfinite(number) else None
        return value

    @staticmethod
    def decode_value(value: Any, codec: Optional[FieldCodec] = None) -> Any:
        """
        Decode a remote value back into its local form.

        ISO-8601-looking strings become datetimes. Yes/No become booleans only
        when the mapping declares the boolean codec.
        """
        if value is None:
            return None

        if codec == FieldCodec.BOOLEAN and isinstance(value, str):
            if value == TRUE_LABEL:
                return True
            if value == FALSE_LABEL:
                return False
        if codec == FieldCodec.LIST and isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        if codec == FieldCodec.NUMBER and isinstance(value, str):
            try:
                return float(value)
            except ValueError:
                return value

        if isinstance(value, str) and ISO_DATETIME_PATTERN.match(value):
            try:
                return datetime.fromisoformat(value.replace("Z", "+00:00"))
            except ValueError:
                logger.warning(f"Date-like value {value!r} could not be decoded")
                return value
        return value

    @staticmethod
    def map_fields(record: DomainRecord, field_mapping: List[FieldMapping]) -> Dict[str, Any]:
        """
        Map one domain record to remote fields.

        Args:
            record: Domain record
            field_mapping: Ordered mapping entries

        Returns:
            Remote field name -> encoded value, null values omitted
        """
        fields: Dict[str, Any] = {}
        for mapping in field_mapping:
            value = FieldMapper.encode_value(get_nested_value(record, mapping.local_path), mapping.codec)
            if value is None:
                continue
            fields[mapping.remote_field] = value
        return fields

    def to_remote(self, records: List[DomainRecord], spec: TableSyncSpec) -> List[RemoteRecord]:
        """
        Map a list of domain records to remote records.

        Records whose mapped field set is empty are dropped. Records that
        already carry a remote id are returned with that id for the update
        path, others carry their local id for post-create backfill.
        """
        remote_records = []
        for record in records:
            fields = self.map_fields(record, spec.field_mapping)
            if not fields:
                logger.debug(f"Skipping {spec.table_name} record {record.get('id')}: no mapped fields")
                continue

            remote_id = record.get("remote_id")
            if is_remote_id(remote_id):
                remote_records.append(RemoteRecord(id=remote_id, fields=fields))
            else:
                remote_records.append(RemoteRecord(fields=fields, local_id=record.get("id")))
        return remote_records

    def from_remote(self, records: List[RemoteRecord], spec: TableSyncSpec) -> List[DomainRecord]:
        """
        Map remote records back to partial domain records.

        Each result carries ``remote_id``; only mapped fields with a value are set.
        """
        partials = []
        for record in records:
            partial: DomainRecord = {}
            for mapping in spec.field_mapping:
                value = record.fields.get(mapping.remote_field)
                if value is None:
                    continue
                set_nested_value(partial, mapping.local_path, self.decode_value(value, mapping.codec))
            partial["remote_id"] = record.id
            partials.append(partial)
        return partials

    def preview(self, records: List[DomainRecord], spec: TableSyncSpec) -> List[Dict[str, Any]]:
        """Dry-run transform: the payloads a push would send, without any I/O."""
        previews = []
        for remote in self.to_remote(records, spec):
            previews.append({
                "operation": "update" if remote.id else "create",
                "local_id": remote.local_id,
                "payload": remote.to_payload(),
            })
        return previews
