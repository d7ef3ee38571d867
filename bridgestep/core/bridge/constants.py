"""Constants and metadata for bridge step execution."""

from typing import Any, Dict, Union

# Chain identifiers are numeric for EVM chains
ChainId = Union[int, str]

NATIVE_PLACEHOLDER = '0x0000000000000000000000000000000000000000'

# Fixed process identifiers within an execution
CROSS_PROCESS_ID = 'crossProcess'
WAIT_FOR_TX_PROCESS_ID = 'waitForTxProcess'

CROSS_PROCESS_MESSAGE = 'Prepare Transaction'
WAIT_FOR_TX_PROCESS_MESSAGE = 'Wait for Receiving Chain'

PREPARE_FAILED_MESSAGE = 'Unable to prepare Transaction'
WAIT_FAILED_MESSAGE = 'Failed waiting'
TRANSFER_STARTED_MESSAGE = 'Transfer started: '
FUNDS_RECEIVED_MESSAGE = 'Funds Received:'

# Built-in metadata used when the transfer API chain list is unavailable
CHAIN_METADATA: Dict[ChainId, Dict[str, Any]] = {
    1: {
        'key': 'eth',
        'name': 'Ethereum',
        'native_symbol': 'ETH',
        'native_token': NATIVE_PLACEHOLDER,
        'native_decimals': 18,
        'explorers': ['https://etherscan.io/'],
    },
    10: {
        'key': 'opt',
        'name': 'Optimism',
        'native_symbol': 'ETH',
        'native_token': NATIVE_PLACEHOLDER,
        'native_decimals': 18,
        'explorers': ['https://optimistic.etherscan.io/'],
    },
    56: {
        'key': 'bsc',
        'name': 'BNB Smart Chain',
        'native_symbol': 'BNB',
        'native_token': NATIVE_PLACEHOLDER,
        'native_decimals': 18,
        'explorers': ['https://bscscan.com/'],
    },
    100: {
        'key': 'dai',
        'name': 'Gnosis',
        'native_symbol': 'xDAI',
        'native_token': NATIVE_PLACEHOLDER,
        'native_decimals': 18,
        'explorers': ['https://gnosisscan.io/'],
    },
    137: {
        'key': 'pol',
        'name': 'Polygon',
        'native_symbol': 'MATIC',
        'native_token': NATIVE_PLACEHOLDER,
        'native_decimals': 18,
        'explorers': ['https://polygonscan.com/'],
    },
    8453: {
        'key': 'bas',
        'name': 'Base',
        'native_symbol': 'ETH',
        'native_token': NATIVE_PLACEHOLDER,
        'native_decimals': 18,
        'explorers': ['https://basescan.org/'],
    },
    42161: {
        'key': 'arb',
        'name': 'Arbitrum',
        'native_symbol': 'ETH',
        'native_token': NATIVE_PLACEHOLDER,
        'native_decimals': 18,
        'explorers': ['https://arbiscan.io/'],
    },
    43114: {
        'key': 'ava',
        'name': 'Avalanche',
        'native_symbol': 'AVAX',
        'native_token': NATIVE_PLACEHOLDER,
        'native_decimals': 18,
        'explorers': ['https://snowtrace.io/'],
    },
}
