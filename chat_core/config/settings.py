"""客户端配置。

取值优先级（高 → 低）：构造参数、环境变量、.env、YAML 配置文件、secrets 目录。
YAML 文件位置由 CHAT_CONFIG_FILE 指定，否则依次查找工作目录与包所在目录下的
config.yaml，只采用找到的第一个。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


CONFIG_FILE_ENV = "CHAT_CONFIG_FILE"


def _config_candidates() -> Iterator[Path]:
    explicit = os.getenv(CONFIG_FILE_ENV)
    if explicit:
        yield Path(explicit).expanduser()
    yield Path.cwd() / "config.yaml"
    here = Path(__file__).resolve()
    yield here.parents[2] / "config.yaml"
    yield here.parents[1] / "config.yaml"


def _read_client_config(path: Path) -> Optional[Dict[str, Any]]:
    """读取单个配置文件；文件不存在或内容不可用时返回 None。"""

    try:
        if not path.is_file():
            return None
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        warnings.warn(f"Ignoring unreadable client config {path}: {exc}")
        return None
    if data is None:
        return {}
    if not isinstance(data, dict):
        warnings.warn(f"Ignoring client config {path}: top level must be a mapping")
        return None
    return data


def load_client_config() -> Dict[str, Any]:
    """返回第一个可用 config.yaml 的内容（键名与 Settings 字段一致）。"""

    tried = set()
    for path in _config_candidates():
        if path in tried:
            continue
        tried.add(path)
        data = _read_client_config(path)
        if data is not None:
            return data
    return {}


class Settings(BaseSettings):
    """客户端配置。

    登录流程依赖 api_base_url / oauth_client_id / oauth_redirect_uri 三项，
    缺失时 SessionManager.login() 会拒绝跳转并给出错误提示。
    """

    # ---- 后端 ----
    api_base_url: Optional[str] = Field(default=None, description="后端 API 基础URL")
    new_chat_path: str = Field(
        default="/chats/new",
        description="以首条消息创建会话的端点路径",
    )

    # ---- OAuth ----
    oauth_client_id: Optional[str] = Field(default=None, description="OAuth 客户端 ID")
    oauth_provider_url: str = Field(
        default="https://accounts.google.com/o/oauth2/v2/auth",
        description="OAuth 提供方登录地址",
    )
    oauth_redirect_uri: Optional[str] = Field(default=None, description="OAuth 回调地址")

    http_timeout: float = Field(default=30.0, ge=1.0, description="HTTP 超时时间（秒）")
    storage_root: str = Field(default=".storage", description="存储根目录（保存访问令牌）")
    log_dir: str = Field(default="logs", description="日志目录")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("api_base_url", "oauth_client_id", "oauth_redirect_uri", mode="before")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("api_base_url", "oauth_provider_url")
    @classmethod
    def strip_trailing_slash(cls, v: Optional[str]) -> Optional[str]:
        if v:
            return v.strip().rstrip("/")
        return v

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # 部署环境用环境变量覆盖 config.yaml 中的 api_base_url / oauth_* 等项
        return (init_settings, env_settings, dotenv_settings, load_client_config, file_secret_settings)


settings = Settings()
