from pydantic_settings import BaseSettings, SettingsConfigDict


class Config(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    CLIENT_ID: str
    CLIENT_NAME: str = ""

    SHOPIFY_SHOP_NAME: str
    SHOPIFY_ACCESS_TOKEN: str
    SHOPIFY_API_VERSION: str = "2024-10"

    # Portal endpoint that pushes tracking numbers to Shopify
    APP_BASE_URL: str = "http://localhost:3000"
    APP_AUTH_TOKEN: str | None = None

    DEFAULT_COURIER: str = "Blue Dart"
    FETCH_DAYS: int = 14
    # Keep courier calls on a mock transport until switched off
    COURIER_MOCK: bool = True

    BLUEDART_ENV: str = "sandbox"
    BLUEDART_CLIENT_ID: str = ""
    BLUEDART_CLIENT_SECRET: str = ""
    BLUEDART_LOGIN_ID: str = ""
    BLUEDART_LICENSE_KEY: str = ""
    BLUEDART_CUSTOMER_CODE: str = ""
    BLUEDART_AREA: str = "HYD"
    BLUEDART_SHIPPER_NAME: str | None = None
    BLUEDART_SERVICE_TYPE: str = "APEX"
    BLUEDART_B2C_ACCOUNT: bool = False
    BLUEDART_CHECK_PINCODE: bool = False

    DTDC_ENV: str = "staging"
    DTDC_API_KEY: str = ""
    DTDC_CUSTOMER_CODE: str = ""
    DTDC_SERVICE_TYPE_ID: str = "B2C SMART EXPRESS"
    # DTDC tracking uses its own login, separate from the Shipsy API key
    DTDC_TRACKING_USERNAME: str = ""
    DTDC_TRACKING_PASSWORD: str = ""

    PICKUP_NAME: str = ""
    PICKUP_PHONE: str = ""
    PICKUP_PINCODE: str = ""
    PICKUP_ADDRESS: str = ""
    PICKUP_CITY: str = ""
    PICKUP_STATE: str = ""

    @property
    def bluedart_is_production(self) -> bool:
        return self.BLUEDART_ENV.lower() == "production"

    @property
    def dtdc_is_production(self) -> bool:
        return self.DTDC_ENV.lower() == "production"


config = Config()  # type: ignore[call-arg]
