import httpx

from src.shared.decorators import log_errors


class ShopifyGraphQLError(Exception):
    """Raised when the Shopify API returns GraphQL errors."""


class ShopifyGraphQLClient:
    """Thin httpx wrapper for a merchant's Shopify Admin GraphQL API."""

    def __init__(
        self,
        shop_name: str,
        access_token: str,
        api_version: str,
        client: httpx.Client | None = None,
    ) -> None:
        # Accept both "my-shop" and "my-shop.myshopify.com"
        shop_domain = shop_name if "." in shop_name else f"{shop_name}.myshopify.com"
        self._endpoint = f"https://{shop_domain}/admin/api/{api_version}/graphql.json"
        self._headers = {
            "X-Shopify-Access-Token": access_token,
            "Content-Type": "application/json",
        }
        self._client = client or httpx.Client(timeout=30.0)

    @log_errors
    def execute(self, query: str, variables: dict | None = None) -> dict:
        """POST a GraphQL query and return the full response body.

        Raises:
            ShopifyGraphQLError: if the response contains a top-level ``errors`` key.
            httpx.HTTPStatusError: on non-2xx HTTP responses.
        """
        payload: dict = {"query": query}
        if variables:
            payload["variables"] = variables

        response = self._client.post(self._endpoint, headers=self._headers, json=payload)
        response.raise_for_status()

        body: dict = response.json()

        if errors := body.get("errors"):
            raise ShopifyGraphQLError(errors)

        return body
