
from pydantic import Field
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    app_name: str = Field("invoice-extractor", alias="APP_NAME")
    app_env: str = Field("dev", alias="APP_ENV")

    # AWS
    aws_region: str | None = Field(default=None, alias="AWS_REGION")
    attachment_bucket: str = Field("", alias="ATTACHMENT_BUCKET")
    table_name: str = Field("", alias="TABLE_NAME")

    # Bedrock
    bedrock_model_id: str = Field("anthropic.claude-3-5-sonnet-20240620-v1:0", alias="BEDROCK_MODEL_ID")
    bedrock_fallback_model_id: str = Field("", alias="BEDROCK_FALLBACK_MODEL_ID")  # Empty = no failover
    bedrock_connect_timeout: int = Field(10, alias="BEDROCK_CONNECT_TIMEOUT")
    bedrock_read_timeout: int = Field(120, alias="BEDROCK_READ_TIMEOUT")
    bedrock_failover_error_codes: str = Field("", alias="BEDROCK_FAILOVER_ERROR_CODES")  # Comma-separated

    # Upload limits (0 = unlimited)
    max_upload_bytes: int = Field(0, alias="MAX_UPLOAD_BYTES")

    # Observability
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")
    metrics_namespace: str = Field("InvoiceExtractor", alias="METRICS_NAMESPACE")
    metrics_service: str = Field("invoice-extractor", alias="METRICS_SERVICE")

    # Oracle Fusion export
    oracle_source: str = Field("INVOICE_EXTRACTOR", alias="ORACLE_SOURCE")
    oracle_business_unit: str = Field("US1 Business Unit", alias="ORACLE_BUSINESS_UNIT")
    oracle_default_invoice_type: str = Field("Standard", alias="ORACLE_DEFAULT_INVOICE_TYPE")
    oracle_supplier_mapping: dict[str, dict] = Field(default_factory=dict, alias="ORACLE_SUPPLIER_MAPPING")  # JSON
    oracle_default_distribution: dict[str, str] = Field(default_factory=dict, alias="ORACLE_DEFAULT_DISTRIBUTION")  # JSON

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "populate_by_name": True}

    def failover_error_codes(self) -> list[str]:
        return [code.strip() for code in self.bedrock_failover_error_codes.split(",") if code.strip()]

settings = Settings()
