import json
import os
import tempfile
from collections import OrderedDict
from pathlib import Path
from typing import Dict, Iterable, Mapping, NamedTuple, Optional, Tuple, Union

from eth_typing import ChecksumAddress
from eth_utils import is_address, to_checksum_address

from diamond_deploy.errors import RecorderWriteFailed
from diamond_deploy.utils import _load_json

ChainId = int
ContractName = str
NetworkName = str
AddressBookValue = Union[ChecksumAddress, int, str]

STANDARD_REGISTRY_JSON_FORMAT = {"indent": 4, "separators": (",", ": ")}


class DeploymentRecord(NamedTuple):
    """A contract deployed during a run; never updated, a re-deploy yields a new record."""

    contract_name: ContractName
    address: ChecksumAddress
    chain_id: ChainId


def _normalize_value(value: AddressBookValue) -> AddressBookValue:
    if isinstance(value, str) and is_address(value):
        return to_checksum_address(value)
    return value


class AddressBook:
    """
    Durable network -> {contract name -> address} mapping.

    Writes are merges: recording entries for one network never alters another network's
    section, and within a network the latest address recorded for a name wins. The file is
    replaced atomically so an interrupted write never corrupts the committed book.
    """

    def __init__(self, filepath: Path):
        self.filepath = Path(filepath)

    def __repr__(self) -> str:
        return f"AddressBook({self.filepath})"

    def read(self) -> Dict[NetworkName, Dict[ContractName, AddressBookValue]]:
        if not self.filepath.exists():
            return OrderedDict()
        return _load_json(self.filepath)

    def section(self, network: NetworkName) -> Dict[ContractName, AddressBookValue]:
        return dict(self.read().get(network, {}))

    def resolve(self, network: NetworkName, name: ContractName) -> Optional[AddressBookValue]:
        return self.section(network).get(name)

    def record(
        self,
        network: NetworkName,
        entries: Union[Mapping[ContractName, AddressBookValue], Iterable[Tuple]],
    ) -> Path:
        """Merges entries into the network's section and commits the book."""
        if isinstance(entries, Mapping):
            entries = entries.items()
        entries = list(entries)
        if not entries:
            print("No entries provided.")
            return self.filepath

        data = self.read()
        section = data.setdefault(network, OrderedDict())
        for name, value in entries:
            section[name] = _normalize_value(value)

        self._write(data)
        print(f"(i) Address book for '{network}' written to {self.filepath}")
        return self.filepath

    def record_deployments(self, network: NetworkName, records: Iterable[DeploymentRecord]) -> Path:
        return self.record(network, [(r.contract_name, r.address) for r in records])

    def _write(self, data: Dict) -> None:
        temp_filepath = None
        try:
            self.filepath.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                dir=self.filepath.parent,
                prefix=f".{self.filepath.name}.",
                suffix=".tmp",
                delete=False,
            ) as file:
                temp_filepath = Path(file.name)
                json.dump(data, file, **STANDARD_REGISTRY_JSON_FORMAT)
                file.write("\n")
                file.flush()
                os.fsync(file.fileno())
            os.replace(temp_filepath, self.filepath)
        except OSError as error:
            if temp_filepath is not None and temp_filepath.exists():
                temp_filepath.unlink()
            raise RecorderWriteFailed(filepath=self.filepath, cause=error) from error
