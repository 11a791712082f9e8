"""
dex/adapters/uniswap_v3.py - Uniswap V3 QuoterV2 adapter (read-only).

Implements the FeeTierQuoter contract over JSON-RPC:
- quoteExactInputSingle via eth_call
- ABI encoding / decoding of the static struct call
"""

from dataclasses import dataclass

from core.logging import get_logger
from core.exceptions import QuoteError, ErrorCode
from chains.providers import RPCProvider

logger = get_logger(__name__)


# =============================================================================
# ABI ENCODING
# =============================================================================

# Function selector: quoteExactInputSingle((address,address,uint256,uint24,uint160))
# keccak256("quoteExactInputSingle((address,address,uint256,uint24,uint160))")[:4]
SELECTOR_QUOTE_EXACT_INPUT_SINGLE = "0xc6a5026a"


def encode_quote_exact_input_single(
    token_in: str,
    token_out: str,
    amount_in: int,
    fee: int,
    sqrt_price_limit_x96: int = 0,
) -> str:
    """
    Encode quoteExactInputSingle call data for QuoterV2.

    QuoterV2 uses a struct parameter:
    struct QuoteExactInputSingleParams {
        address tokenIn;
        address tokenOut;
        uint256 amountIn;
        uint24 fee;
        uint160 sqrtPriceLimitX96;
    }

    For a tuple of static types, encoding is simply: selector + fields (no offset).
    """
    token_in_padded = token_in[2:].lower().zfill(64)
    token_out_padded = token_out[2:].lower().zfill(64)
    amount_in_hex = hex(amount_in)[2:].zfill(64)
    fee_hex = hex(fee)[2:].zfill(64)
    sqrt_price_hex = hex(sqrt_price_limit_x96)[2:].zfill(64)

    return (
        f"{SELECTOR_QUOTE_EXACT_INPUT_SINGLE}"
        f"{token_in_padded}"
        f"{token_out_padded}"
        f"{amount_in_hex}"
        f"{fee_hex}"
        f"{sqrt_price_hex}"
    )


def decode_quote_response(hex_result: str | None) -> tuple[int, int, int, int]:
    """
    Decode quoteExactInputSingle response.

    Returns:
        (amountOut, sqrtPriceX96After, initializedTicksCrossed, gasEstimate)
    """
    if not hex_result or hex_result == "0x":
        raise QuoteError(
            code=ErrorCode.QUOTE_REVERT,
            message="Empty quote response",
        )

    data = hex_result[2:] if hex_result.startswith("0x") else hex_result

    # Each value is 32 bytes (64 hex chars)
    if len(data) < 256:
        raise QuoteError(
            code=ErrorCode.QUOTE_REVERT,
            message=f"Quote response too short: {len(data)} chars",
            details={"data_length": len(data), "raw": hex_result[:100]},
        )

    amount_out = int(data[0:64], 16)
    sqrt_price_x96_after = int(data[64:128], 16)
    ticks_crossed = int(data[128:192], 16)
    gas_estimate = int(data[192:256], 16)

    return amount_out, sqrt_price_x96_after, ticks_crossed, gas_estimate


# =============================================================================
# ADAPTER
# =============================================================================

@dataclass
class UniswapV3QuoteResult:
    """Result from Uniswap V3 quote."""
    amount_out: int
    sqrt_price_x96_after: int
    ticks_crossed: int
    gas_estimate: int
    latency_ms: int


class UniswapV3Quoter:
    """
    QuoterV2 client usable as the FeeTierQuoter of a FeeTierRoute.

    Usage:
        quoter = UniswapV3Quoter(provider, quoter_address)
        amount_out = await quoter.quote_exact_input_single(WETH, USDC, 3000, 10**18)
    """

    def __init__(
        self,
        provider: RPCProvider,
        quoter_address: str,
        dex_id: str = "uniswap_v3",
    ):
        self.provider = provider
        self.quoter_address = quoter_address
        self.dex_id = dex_id

    async def get_quote_raw(
        self,
        token_in: str,
        token_out: str,
        amount_in: int,
        fee: int,
        block_number: int | None = None,
    ) -> UniswapV3QuoteResult:
        """
        Get raw quote from QuoterV2.

        Args:
            token_in: Input token address
            token_out: Output token address
            amount_in: Input amount in wei
            fee: Fee tier (100, 500, 3000, 10000)
            block_number: Block number to query at (None = latest)

        Returns:
            UniswapV3QuoteResult with amounts and gas estimate
        """
        call_data = encode_quote_exact_input_single(
            token_in=token_in,
            token_out=token_out,
            amount_in=amount_in,
            fee=fee,
        )

        block_tag = hex(block_number) if block_number else "latest"

        try:
            response = await self.provider.eth_call(
                to=self.quoter_address,
                data=call_data,
                block=block_tag,
            )

            amount_out, sqrt_price, ticks, gas = decode_quote_response(response.result)

            return UniswapV3QuoteResult(
                amount_out=amount_out,
                sqrt_price_x96_after=sqrt_price,
                ticks_crossed=ticks,
                gas_estimate=gas,
                latency_ms=response.latency_ms,
            )

        except QuoteError:
            raise
        except Exception as e:
            raise QuoteError(
                code=ErrorCode.QUOTE_REVERT,
                message=f"Quote call failed: {e}",
                details={
                    "token_in": token_in,
                    "token_out": token_out,
                    "amount_in": amount_in,
                    "fee": fee,
                    "quoter": self.quoter_address,
                    "error_type": type(e).__name__,
                },
            ) from e

    async def quote_exact_input_single(
        self,
        token_in: str,
        token_out: str,
        fee: int,
        amount_in: int,
    ) -> int:
        result = await self.get_quote_raw(
            token_in=token_in,
            token_out=token_out,
            amount_in=amount_in,
            fee=fee,
        )

        logger.debug(
            "QuoterV2 quote",
            extra={
                "context": {
                    "dex_id": self.dex_id,
                    "token_in": token_in,
                    "token_out": token_out,
                    "amount_in": amount_in,
                    "amount_out": result.amount_out,
                    "fee": fee,
                    "ticks_crossed": result.ticks_crossed,
                    "latency_ms": result.latency_ms,
                }
            },
        )

        return result.amount_out
