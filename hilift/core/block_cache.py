import logging
import threading
from typing import Dict, Iterable, List, Set, Tuple

from cachetools import LRUCache
from readerwriterlock import rwlock

from hilift.core.common import Block, BlockCacheKey

logger = logging.getLogger(__name__)


class BlockCache(object):
    """
    Shared LRU cache of loaded blocks keyed by (dataset_key, block_number, normalization).

    Loading discipline: a caller that misses a key claims it with claim_missing(); a claimed key
    is loaded by its claimer only, every other caller waits until the claimer publishes the
    loaded block or abandons the claim.
    """

    def __init__(self, block_cache_size: int = 64) -> None:
        super().__init__()
        self.block_cache_size: int = block_cache_size
        self.block_cache: LRUCache = LRUCache(maxsize=block_cache_size)
        # LRU lookups reorder entries so both reads and writes take the write lock
        self.block_cache_lock: rwlock.RWLockWrite = rwlock.RWLockWrite(
            lock_factory=threading.RLock)
        self.in_flight: Set[BlockCacheKey] = set()
        self.in_flight_condition: threading.Condition = threading.Condition()

    def get(self, key: BlockCacheKey) -> Block:
        with self.block_cache_lock.gen_wlock():
            return self.block_cache.get(key)

    def get_many(self, keys: Iterable[BlockCacheKey]) -> Dict[BlockCacheKey, Block]:
        found: Dict[BlockCacheKey, Block] = dict()
        with self.block_cache_lock.gen_wlock():
            for key in keys:
                block = self.block_cache.get(key)
                if block is not None:
                    found[key] = block
        return found

    def __contains__(self, key: BlockCacheKey) -> bool:
        with self.block_cache_lock.gen_rlock():
            return key in self.block_cache

    def __len__(self) -> int:
        with self.block_cache_lock.gen_rlock():
            return len(self.block_cache)

    def put(self, key: BlockCacheKey, block: Block) -> None:
        with self.block_cache_lock.gen_wlock():
            self.block_cache[key] = block

    def claim_missing(
        self,
        keys: Iterable[BlockCacheKey]
    ) -> Tuple[Dict[BlockCacheKey, Block], List[BlockCacheKey], List[BlockCacheKey]]:
        """
        Splits keys into cached blocks, keys claimed by this caller and keys loaded by others.

        :return: (cached, claimed, awaited); the caller must publish or abandon every claimed key.
        """
        keys = list(dict.fromkeys(keys))
        with self.in_flight_condition:
            cached = self.get_many(keys)
            claimed: List[BlockCacheKey] = []
            awaited: List[BlockCacheKey] = []
            for key in keys:
                if key in cached:
                    continue
                if key in self.in_flight:
                    awaited.append(key)
                else:
                    self.in_flight.add(key)
                    claimed.append(key)
        logger.debug(
            f"Block cache: {len(cached)} hit(s), {len(claimed)} claimed, {len(awaited)} awaited")
        return cached, claimed, awaited

    def publish(self, blocks: Dict[BlockCacheKey, Block]) -> None:
        with self.in_flight_condition:
            with self.block_cache_lock.gen_wlock():
                for key, block in blocks.items():
                    self.block_cache[key] = block
            self.in_flight.difference_update(blocks.keys())
            self.in_flight_condition.notify_all()

    def abandon(self, keys: Iterable[BlockCacheKey]) -> None:
        with self.in_flight_condition:
            self.in_flight.difference_update(keys)
            self.in_flight_condition.notify_all()

    def wait_for_in_flight(self, keys: Iterable[BlockCacheKey]) -> None:
        keys = list(keys)
        with self.in_flight_condition:
            self.in_flight_condition.wait_for(
                lambda: all(key not in self.in_flight for key in keys))

    def clear(self) -> None:
        with self.block_cache_lock.gen_wlock():
            self.block_cache.clear()
