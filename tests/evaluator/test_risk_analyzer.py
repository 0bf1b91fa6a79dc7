from evaluator.models import MarketData, SentimentData, SwapTransaction, TokenPrice
from evaluator.risk_analyzer import RiskAnalyzer


def _make_transaction(amount_in=50.0, slippage=0.02):
    return SwapTransaction(
        token_in="USDC",
        token_out="BONK",
        amount_in=amount_in,
        estimated_amount_out=1_000_000.0,
        slippage=slippage,
        pool_name="Orca",
        wallet_address="wallet",
        timestamp=0,
    )


def _sentiment(score):
    return SentimentData(
        token="BONK",
        sentiment_score=score,
        volume_change_24h=0.0,
        social_mentions=10,
        trending_score=0.5,
        timestamp=0,
    )


def test_baseline_risk_is_medium():
    assert RiskAnalyzer(3).analyze_risk(_make_transaction()) == 2


def test_large_size_and_slippage_increase_risk_up_to_cap():
    analyzer = RiskAnalyzer(3)
    assert analyzer.analyze_risk(_make_transaction(amount_in=500.0, slippage=0.05), _sentiment(-0.5)) == 3


def test_small_calm_swap_is_low_risk():
    analyzer = RiskAnalyzer(3)
    assert analyzer.analyze_risk(_make_transaction(amount_in=1.0, slippage=0.005), _sentiment(0.9)) == 1


def test_volatile_output_token_adds_risk():
    market = MarketData(
        prices=[TokenPrice(token="BONK", price_usd=0.00001, change_24h=-15.0, volume_24h=1.0)],
        pools=[],
        timestamp=0,
    )
    assert RiskAnalyzer(3).analyze_risk(_make_transaction(), market_data=market) == 3


def test_tolerance_is_clamped():
    assert RiskAnalyzer(10).risk_tolerance == 3
    assert RiskAnalyzer(0).risk_tolerance == 1
    assert RiskAnalyzer(2).is_within_risk_tolerance(2) is True
    assert RiskAnalyzer(2).is_within_risk_tolerance(3) is False
