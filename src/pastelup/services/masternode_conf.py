"""masternode.conf registry: one whitespace-separated line per masternode."""

import os
import shutil
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from pastelup.constants import FILE_MODE
from pastelup.errors import MissingConfigError, PastelupError
from pastelup.errors_catalog import actionable_error
from pastelup.models import MasternodeRecord

LEGACY_FIELD_COUNT = 5
FULL_FIELD_COUNT = 8


def _split_endpoint(value: str) -> Tuple[str, int]:
    host, sep, port = value.rpartition(":")
    if not sep or not port.isdigit():
        raise PastelupError(f"Invalid address in masternode.conf: {value!r}")
    return host, int(port)


def format_record(record: MasternodeRecord, legacy: bool = False) -> str:
    """Renders one registry line; records without a Pastel ID keep the five-field layout."""
    fields = [
        record.name,
        f"{record.ip}:{record.port}",
        record.private_key,
        record.txid,
        record.index,
    ]
    if not legacy and record.pastel_id:
        fields.extend(
            [
                f"{record.rpc_ip}:{record.rpc_port}",
                f"{record.p2p_ip}:{record.p2p_port}",
                record.pastel_id,
            ]
        )
    return " ".join(fields)


def parse_record(line: str) -> MasternodeRecord:
    parts = line.split()
    if len(parts) not in (LEGACY_FIELD_COUNT, FULL_FIELD_COUNT):
        raise PastelupError(f"Malformed masternode.conf line: {line!r}")

    ip, port = _split_endpoint(parts[1])
    record = MasternodeRecord(
        name=parts[0],
        ip=ip,
        port=port,
        private_key=parts[2],
        txid=parts[3],
        index=parts[4],
    )
    if len(parts) == LEGACY_FIELD_COUNT:
        return record

    rpc_ip, rpc_port = _split_endpoint(parts[5])
    p2p_ip, p2p_port = _split_endpoint(parts[6])
    return MasternodeRecord(
        name=record.name,
        ip=record.ip,
        port=record.port,
        private_key=record.private_key,
        txid=record.txid,
        index=record.index,
        rpc_ip=rpc_ip,
        rpc_port=rpc_port,
        p2p_ip=p2p_ip,
        p2p_port=p2p_port,
        pastel_id=parts[7],
    )


class MasternodeRegistry:
    """Keyed view over masternode.conf. Disk is the only source of truth."""

    def __init__(self, path: str, logger, legacy: bool = False):
        self.path = path
        self.logger = logger
        self.legacy = legacy

    def exists(self) -> bool:
        return os.path.isfile(self.path)

    def read_all(self) -> Dict[str, MasternodeRecord]:
        if not self.exists():
            raise MissingConfigError(actionable_error("masternode_conf_not_found", path=self.path))

        records: Dict[str, MasternodeRecord] = {}
        with open(self.path, "r", encoding="utf-8") as handle:
            for raw_line in handle:
                line = raw_line.strip()
                if not line or line.startswith("#"):
                    continue
                record = parse_record(line)
                records[record.name] = record
        return records

    def get(self, name: str) -> MasternodeRecord:
        records = self.read_all()
        if name not in records:
            raise MissingConfigError(actionable_error("masternode_not_in_conf", name=name, path=self.path))
        return records[name]

    def find(self, name: str) -> Optional[MasternodeRecord]:
        if not self.exists():
            return None
        return self.read_all().get(name)

    def upsert(self, record: MasternodeRecord):
        """Adds or replaces the entry for ``record.name``; other entries keep their order."""
        records: Dict[str, MasternodeRecord] = self.read_all() if self.exists() else {}
        action = "Updating" if record.name in records else "Adding"
        records[record.name] = record

        lines: List[str] = [format_record(item, legacy=self.legacy) for item in records.values()]
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as handle:
            handle.write("\n".join(lines) + "\n")
        if os.name != "nt":
            os.chmod(self.path, FILE_MODE)
        self.logger.info("%s masternode '%s' in %s", action, record.name, self.path)

    def backup(self) -> Optional[str]:
        if not self.exists():
            return None
        stamp = datetime.now().strftime("%Y%m%d%H%M%S")
        backup_path = f"{self.path}.bak.{stamp}"
        shutil.copy2(self.path, backup_path)
        self.logger.info("Backed up %s to %s", self.path, backup_path)
        return backup_path
