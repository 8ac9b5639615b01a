from collections import OrderedDict
from typing import Dict, Iterable, List, Mapping, NamedTuple, Optional, Sequence, Tuple, Union

from ape.utils import ZERO_ADDRESS
from eth_typing import ChecksumAddress
from eth_utils import is_hex, to_bytes, to_checksum_address

from diamond_deploy.constants import DIAMOND_CUT_SELECTOR, FacetCutAction
from diamond_deploy.errors import InvalidCut, SelectorCollision

Selector = str


def normalize_selector(value: Union[str, bytes]) -> Selector:
    """Returns a selector as a lowercase, 0x-prefixed, 4-byte hex string."""
    if isinstance(value, (bytes, bytearray)):
        value = "0x" + bytes(value).hex()
    selector = value.strip().lower()
    if not selector.startswith("0x"):
        selector = "0x" + selector
    if len(selector) != 10 or not is_hex(selector):
        raise ValueError(f"'{value}' is not a 4-byte function selector")
    return selector


def _ordered_selectors(selectors: Iterable[Union[str, bytes]]) -> Tuple[Selector, ...]:
    return tuple(OrderedDict.fromkeys(normalize_selector(s) for s in selectors))


class Facet(NamedTuple):
    """A deployed code module exposing a set of selectors through the Diamond."""

    name: str
    address: ChecksumAddress
    selectors: Tuple[Selector, ...]

    @classmethod
    def create(cls, name: str, address: str, selectors: Iterable[Union[str, bytes]]) -> "Facet":
        return cls(
            name=name,
            address=to_checksum_address(address),
            selectors=_ordered_selectors(selectors),
        )


class FacetCut(NamedTuple):
    facet_address: ChecksumAddress
    action: FacetCutAction
    selectors: Tuple[Selector, ...]

    def encode(self) -> tuple:
        """Returns the cut in the shape of the IDiamondCut.FacetCut struct."""
        return (
            self.facet_address,
            int(self.action),
            [to_bytes(hexstr=selector) for selector in self.selectors],
        )


class CutBatch(NamedTuple):
    """An ordered list of facet cuts submitted as one diamondCut transaction."""

    cuts: Tuple[FacetCut, ...]
    init_address: ChecksumAddress = ZERO_ADDRESS
    init_calldata: bytes = b""

    @property
    def is_empty(self) -> bool:
        return not self.cuts and self.init_address == ZERO_ADDRESS

    @property
    def selectors(self) -> List[Selector]:
        return [selector for cut in self.cuts for selector in cut.selectors]

    def encode(self) -> list:
        return [cut.encode() for cut in self.cuts]

    def with_initializer(self, init_address: str, init_calldata: bytes) -> "CutBatch":
        return self._replace(
            init_address=to_checksum_address(init_address), init_calldata=init_calldata
        )


class SelectorRegistry:
    """
    In-memory view of a Diamond's function table: which selector is served by which facet.

    The registry is used both to validate an intended facet configuration (no selector may
    be claimed by two facets) and to track the current on-chain table so that later cuts
    can be diffed incrementally.
    """

    def __init__(self):
        self._owners: Dict[Selector, ChecksumAddress] = OrderedDict()
        self._names: Dict[ChecksumAddress, str] = dict()

    def __len__(self) -> int:
        return len(self._owners)

    def __contains__(self, selector) -> bool:
        return normalize_selector(selector) in self._owners

    @classmethod
    def from_facets(cls, facets: Iterable[Facet]) -> "SelectorRegistry":
        registry = cls()
        for facet in facets:
            registry.register(facet)
        return registry

    @classmethod
    def for_new_diamond(cls, cut_facet: Facet) -> "SelectorRegistry":
        """A freshly constructed Diamond only serves diamondCut, through the cut facet."""
        registry = cls()
        registry.register(cut_facet._replace(selectors=(DIAMOND_CUT_SELECTOR,)))
        return registry

    @classmethod
    def from_loupe(
        cls, loupe, names: Optional[Mapping[str, str]] = None
    ) -> "SelectorRegistry":
        """
        Builds the registry from the Diamond's loupe (`facets()`), optionally
        naming facets using an address -> name mapping (e.g. from the address book).
        """
        names = {to_checksum_address(a): n for a, n in (names or {}).items()}
        registry = cls()
        for facet_address, selectors in loupe.facets():
            address = to_checksum_address(facet_address)
            facet = Facet.create(names.get(address, address), address, selectors)
            registry.register(facet)
        return registry

    def describe(self, address: str) -> str:
        name = self._names.get(address)
        return f"{name} ({address})" if name and name != address else address

    def owner(self, selector) -> Optional[ChecksumAddress]:
        return self._owners.get(normalize_selector(selector))

    def table(self) -> Dict[Selector, ChecksumAddress]:
        return OrderedDict(self._owners)

    def facets(self) -> List[Facet]:
        """Returns the current configuration grouped by facet, in registration order."""
        grouped = OrderedDict()
        for selector, address in self._owners.items():
            grouped.setdefault(address, []).append(selector)
        return [
            Facet(name=self._names.get(address, address), address=address, selectors=tuple(s))
            for address, s in grouped.items()
        ]

    def register(
        self,
        facet: Facet,
        selectors: Optional[Sequence] = None,
        action: FacetCutAction = FacetCutAction.ADD,
    ) -> None:
        """
        Assigns selectors to a facet. A selector owned by another facet is a collision
        unless the registration is an explicit Replace.
        """
        address = to_checksum_address(facet.address)
        selectors = _ordered_selectors(facet.selectors if selectors is None else selectors)
        for selector in selectors:
            current = self._owners.get(selector)
            if action == FacetCutAction.REPLACE:
                if current is None:
                    raise InvalidCut(selector, "cannot replace a selector that is not assigned")
                if current == address:
                    raise InvalidCut(
                        selector, f"selector is already served by {self.describe(address)}"
                    )
            elif current is not None and current != address:
                raise SelectorCollision(
                    selector=selector,
                    existing_facet=self.describe(current),
                    new_facet=f"{facet.name} ({address})",
                )

        self._names[address] = facet.name
        for selector in selectors:
            self._owners[selector] = address

    def validate(self, batch: CutBatch) -> Dict[Selector, ChecksumAddress]:
        """
        Simulates the batch against the current table and returns the resulting table.
        Raises on the first cut whose precondition does not hold; the registry is untouched.
        """
        table = OrderedDict(self._owners)
        for cut in batch.cuts:
            address = to_checksum_address(cut.facet_address)
            for selector in map(normalize_selector, cut.selectors):
                current = table.get(selector)
                if cut.action == FacetCutAction.ADD:
                    if address == ZERO_ADDRESS:
                        raise InvalidCut(selector, "cannot add a selector to the zero address")
                    if current is not None:
                        raise SelectorCollision(
                            selector=selector,
                            existing_facet=self.describe(current),
                            new_facet=self.describe(address),
                        )
                    table[selector] = address
                elif cut.action == FacetCutAction.REPLACE:
                    if address == ZERO_ADDRESS:
                        raise InvalidCut(selector, "cannot replace a selector with the zero address")
                    if current is None:
                        raise InvalidCut(selector, "cannot replace a selector that is not assigned")
                    if current == address:
                        raise InvalidCut(
                            selector, f"selector is already served by {self.describe(address)}"
                        )
                    table[selector] = address
                elif cut.action == FacetCutAction.REMOVE:
                    if address != ZERO_ADDRESS:
                        raise InvalidCut(selector, "remove requires the zero facet address")
                    if current is None:
                        raise InvalidCut(selector, "cannot remove a selector that is not assigned")
                    del table[selector]
                else:
                    raise InvalidCut(selector, f"unknown cut action {cut.action}")
        return table

    def apply(self, batch: CutBatch, names: Optional[Mapping[str, str]] = None) -> None:
        """Applies every cut of the batch, or none of them."""
        table = self.validate(batch)
        for address, name in (names or {}).items():
            self._names[to_checksum_address(address)] = name
        self._owners = table

    def diff(self, facets: Iterable[Facet]) -> CutBatch:
        return diff(self.facets(), facets)


def diff(old_facets: Iterable[Facet], new_facets: Iterable[Facet]) -> CutBatch:
    """
    Computes the minimal cut batch moving a Diamond from one facet configuration to another:
    selectors only in the new configuration are added, selectors served by a different
    facet are replaced and selectors only in the old configuration are removed.
    """
    old = SelectorRegistry.from_facets(old_facets)
    new = SelectorRegistry.from_facets(new_facets)

    cuts = list()
    for facet in new.facets():
        added, replaced = list(), list()
        for selector in facet.selectors:
            current = old.owner(selector)
            if current is None:
                added.append(selector)
            elif current != facet.address:
                replaced.append(selector)
        if added:
            cuts.append(FacetCut(facet.address, FacetCutAction.ADD, tuple(added)))
        if replaced:
            cuts.append(FacetCut(facet.address, FacetCutAction.REPLACE, tuple(replaced)))

    removed = tuple(selector for selector in old.table() if new.owner(selector) is None)
    if removed:
        cuts.append(FacetCut(ZERO_ADDRESS, FacetCutAction.REMOVE, removed))

    return CutBatch(cuts=tuple(cuts))
