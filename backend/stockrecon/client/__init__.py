from .offline_queue import (
    OfflineQueue,
    QueuedMutation,
    HttpSaleTransport,
    TransportError,
    MutationRejected,
    MUTATION_PENDING,
    MUTATION_SYNCED,
    MUTATION_CONFLICT,
)

__all__ = [
    'OfflineQueue', 'QueuedMutation', 'HttpSaleTransport',
    'TransportError', 'MutationRejected',
    'MUTATION_PENDING', 'MUTATION_SYNCED', 'MUTATION_CONFLICT',
]
