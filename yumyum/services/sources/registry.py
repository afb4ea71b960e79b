from typing import List

from yumyum.services.http.fetcher import BoundedFetcher
from yumyum.services.scraping.browser import PageRenderer
from yumyum.services.sources.alternative import FearGreedAdapter
from yumyum.services.sources.base import SourceAdapter
from yumyum.services.sources.beaconchain import BeaconchainAdapter
from yumyum.services.sources.binance import BinanceFundingAdapter
from yumyum.services.sources.coingecko import CoinGeckoAdapter
from yumyum.services.sources.defillama import DefiLlamaAdapter
from yumyum.services.sources.farside import FarsideEtfFlowAdapter
from yumyum.services.sources.solana import SolanaAdapter
from yumyum.services.sources.treasuries import DatHoldingsAdapter, DefiLlamaEtfHoldingsAdapter
from yumyum.services.sources.ultrasound import UltrasoundAdapter


def build_adapters(fetcher: BoundedFetcher, renderer: PageRenderer) -> List[SourceAdapter]:
    """Every known adapter; the orchestrator filters by run profile."""
    return [
        CoinGeckoAdapter(fetcher),
        FearGreedAdapter(fetcher),
        DefiLlamaAdapter(fetcher),
        UltrasoundAdapter(fetcher),
        BeaconchainAdapter(fetcher),
        SolanaAdapter(fetcher),
        BinanceFundingAdapter(fetcher),
        FarsideEtfFlowAdapter(renderer, fetcher),
        DatHoldingsAdapter(renderer, fetcher),
        DefiLlamaEtfHoldingsAdapter(renderer, fetcher),
    ]
