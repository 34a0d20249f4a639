import pytest

from panelhub.display import CONVERSION_FACTOR, to_currency


@pytest.mark.parametrize(
    "quota,rate,usd,cny",
    [
        (CONVERSION_FACTOR, 7.0, 1.0, 7.0),
        (0, 7.0, 0.0, 0.0),
        (1_234_567, 7.2, 2.47, 17.78),
    ],
)
def test_to_currency(quota, rate, usd, cny):
    amount = to_currency(quota, rate)
    assert amount.usd == usd
    assert amount.cny == cny
