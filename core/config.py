"""
配置文件 - 项目配置管理

所有组件通过构造函数接收所需的配置分组（FlowSettings/EmailSettings/...），
不在模块导入时读取全局配置。启动时调用 load_settings()，缺失的密钥直接失败。
"""
import json
from typing import Optional

from pydantic import BaseModel, Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(RuntimeError):
    """启动配置错误（缺少密钥或取值非法），只在启动阶段抛出"""

    def __init__(self, message: str, *, fields: Optional[list[str]] = None):
        self.fields = fields or []
        super().__init__(message)


class FlowSettings(BaseModel):
    """Flow 支付网关配置"""
    api_url: str = "https://www.flow.cl/api"  # 沙箱: https://sandbox.flow.cl/api
    api_key: Optional[str] = None
    secret_key: Optional[str] = None
    url_confirmation: Optional[str] = None
    url_return: Optional[str] = None
    currency: str = "CLP"
    # 9 = 全部支付方式
    payment_method: int = 9
    subject_prefix: str = "Maka Tatuajes"
    timeout_seconds: float = 10.0
    callback_timeout_seconds: float = 25.0
    max_retries: int = 1
    retry_backoff_seconds: float = 0.5
    ack_body: str = "PAYMENT_CONFIRMED"
    # 可选：允许回调的来源 IP/CIDR
    ip_allowlist: Optional[list[str]] = None


class EmailSettings(BaseModel):
    """邮件服务（Resend）配置"""
    api_url: str = "https://api.resend.com"
    api_key: Optional[str] = None
    from_address: str = "Makatatuajes <onboarding@resend.dev>"
    operator_address: str = "makatatuajes@outlook.com"
    bcc: Optional[list[str]] = None
    timeout_seconds: float = 10.0


class CalendarSettings(BaseModel):
    """Microsoft Graph 日历配置（可选，未配置时不挂载预约路由）"""
    tenant_id: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    calendar_id: Optional[str] = None
    authority_url: str = "https://login.microsoftonline.com"
    graph_url: str = "https://graph.microsoft.com/v1.0"
    timezone: str = "America/Santiago"
    location: str = "Estudio de Tatuajes Maka"
    work_start_hour: int = 10
    work_end_hour: int = 18
    slot_hours: int = 2
    timeout_seconds: float = 10.0

    @property
    def enabled(self) -> bool:
        return all((self.tenant_id, self.client_id, self.client_secret, self.calendar_id))


class DatabaseSettings(BaseModel):
    url: str = "sqlite+aiosqlite:///./orders.db"
    echo: bool = False


class SiteSettings(BaseModel):
    """前端站点地址（支付返回后的跳转页面）"""
    base_url: str = "https://makatatuajes.com"
    success_path: str = "/success.html"
    failure_path: str = "/failure.html"

    @property
    def success_url(self) -> str:
        return f"{self.base_url.rstrip('/')}{self.success_path}"

    @property
    def failure_url(self) -> str:
        return f"{self.base_url.rstrip('/')}{self.failure_path}"


# 启动时必须提供的密钥（字段路径 -> 环境变量名）
REQUIRED_SECRETS = {
    ("flow", "api_key"): "FLOW__API_KEY",
    ("flow", "secret_key"): "FLOW__SECRET_KEY",
    ("flow", "url_confirmation"): "FLOW__URL_CONFIRMATION",
    ("flow", "url_return"): "FLOW__URL_RETURN",
    ("email", "api_key"): "EMAIL__API_KEY",
}


class Settings(BaseSettings):
    """项目配置"""

    # 基础配置
    PROJECT_NAME: str = "Maka Booking API"
    VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"
    ORDER_PREFIX: str = "MAKA"

    # 分组配置：嵌套模型，环境变量使用 "__" 分隔，如 FLOW__API_KEY
    flow: FlowSettings = Field(default_factory=FlowSettings)
    email: EmailSettings = Field(default_factory=EmailSettings)
    calendar: CalendarSettings = Field(default_factory=CalendarSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    site: SiteSettings = Field(default_factory=SiteSettings)

    # CORS配置：逗号分隔或 JSON 数组字符串
    CORS_ORIGINS: str = "https://makatatuajes.com,http://localhost:3000"

    # 日志/请求体记录配置
    LOG_REQUEST_BODY: bool = False
    LOG_REQUEST_BODY_MAX_BYTES: int = 2048

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )

    @model_validator(mode="after")
    def _validate_required_secrets(self):
        # 所有环境均要求显式配置网关与邮件密钥，缺失时在启动阶段失败
        missing = [
            env_name
            for (group, attr), env_name in REQUIRED_SECRETS.items()
            if not getattr(getattr(self, group), attr)
        ]
        if missing:
            raise ValueError(f"missing required settings: {', '.join(missing)}")
        if self.flow.max_retries < 0:
            raise ValueError("FLOW__MAX_RETRIES must be >= 0")
        return self

    @property
    def cors_origins(self) -> list[str]:
        """允许 JSON 字符串或逗号分隔字符串两种格式。"""
        s = self.CORS_ORIGINS.strip()
        if s.startswith("[") and s.endswith("]"):
            try:
                arr = json.loads(s)
            except ValueError:
                arr = None
            if isinstance(arr, list):
                return [str(item) for item in arr]
        return [item.strip() for item in s.split(",") if item.strip()]


def load_settings(**overrides) -> Settings:
    """加载配置；校验失败转换为 ConfigurationError。

    错误信息只包含字段名，不回显任何输入值（避免把密钥写进日志）。
    """
    try:
        return Settings(**overrides)
    except ValidationError as exc:
        fields: list[str] = []
        reasons: list[str] = []
        for err in exc.errors():
            loc = ".".join(str(p) for p in err.get("loc", ()))
            if loc:
                fields.append(loc)
            msg = str(err.get("msg", ""))
            # model_validator 的消息本身只包含变量名
            if err.get("type") == "value_error":
                reasons.append(msg.removeprefix("Value error, "))
            else:
                reasons.append(f"{loc or 'settings'}: {err.get('type')}")
        raise ConfigurationError(
            "Invalid configuration: " + "; ".join(reasons),
            fields=fields,
        ) from None
