from dataclasses import dataclass, field
import time
from typing import Dict, List, Optional

from boxwire.common.channel import EncryptedChannel


@dataclass
class Client:   # one established channel as the listener sees it
    address: str                 # "host:port" of the remote end
    channel: EncryptedChannel
    connected_at: float = field(default_factory=time.time)

    @property
    def public_key(self) -> bytes:
        return self.channel.remote_public_key


class ServerState:
    '''
    Live channels of one listener, keyed by remote address. All access happens
    on the event loop thread, so there is no locking.
    '''
    def __init__(self):
        self.clients: Dict[str, Client] = {}

    def add_client(self, c: Client) -> bool:
        ''' This function registers a channel; False if the address is already present '''
        if c.address in self.clients:
            return False
        self.clients[c.address] = c
        return True

    def remove(self, address: str) -> Optional[Client]:
        return self.clients.pop(address, None)

    def get(self, address: str) -> Optional[Client]:
        return self.clients.get(address)

    def by_public_key(self, public_key: bytes) -> List[Client]:
        ''' All channels whose peer announced public_key (several peers may claim the same key) '''
        return [c for c in self.clients.values() if c.public_key == public_key]

    def all_clients(self) -> List[Client]:
        return list(self.clients.values())

    def __len__(self) -> int:
        return len(self.clients)
