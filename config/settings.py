"""
Settings Configuration
使用 Pydantic 进行配置验证和管理
"""
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class JGISettings(BaseSettings):
    """JGI Data Portal API 配置"""
    base_url: str = Field(default="https://files.jgi.doe.gov", description="门户根地址")
    search_path: str = Field(default="/search/", description="搜索接口路径")
    page_size: int = Field(default=100, description="每页记录数")
    request_delay_ms: int = Field(default=100, description="同一域名相邻两页之间的间隔(毫秒)")
    request_timeout: float = Field(default=30.0, description="单页请求超时(秒)")
    user_agent: str = Field(
        default="MicrobeMetrics/1.0 (genomes.kenflynn.dev)",
        description="User Agent",
    )
    page_param: str = Field(default="p", description="页码参数名")
    page_size_param: str = Field(default="x", description="每页大小参数名")
    dataset_type: str = Field(default="Finished Genome", description="数据集类型过滤")
    superseded: str = Field(default="Current", description="版本过滤")

    class Config:
        env_prefix = "JGI_"


class ExtractionSettings(BaseSettings):
    """抽取深度配置"""
    incremental_max_pages: int = Field(default=3, description="增量模式每个域最多页数")
    full_max_pages: int = Field(default=100, description="全量模式每个域最多页数")

    class Config:
        env_prefix = "EXTRACTION_"


class StorageSettings(BaseSettings):
    """存储配置"""
    object_store_path: str = Field(default="./data/objects", description="对象存储目录")
    cache_path: str = Field(default="./data/cache", description="缓存目录")
    cache_provider: str = Field(default="disk", description="缓存实现: memory, disk")
    last_extraction_ttl: int = Field(default=86400, description="last_extraction 过期时间(秒)")
    overview_ttl: int = Field(default=3600, description="概览热缓存过期时间(秒)")
    master_metadata_ttl: int = Field(default=86400, description="主数据集元数据过期时间(秒)")
    run_history_limit: int = Field(default=50, description="保留的运行历史条数")

    class Config:
        env_prefix = "STORAGE_"


class AnalyticsSettings(BaseSettings):
    """分析快照配置"""
    daily_window_days: int = Field(default=30, description="日趋势窗口(天)")
    new_projects_window_days: int = Field(default=7, description="'本周新增'窗口(天)")
    healthy_hours: float = Field(default=25.0, description="健康阈值(小时)")
    warning_hours: float = Field(default=48.0, description="告警阈值(小时)")
    max_recent_activity: int = Field(default=10, description="最近活动条数上限")

    class Config:
        env_prefix = "ANALYTICS_"


class GeneralSettings(BaseSettings):
    """通用设置"""
    log_level: str = Field(default="INFO", description="日志级别")
    log_file: Optional[str] = Field(default=None, description="日志文件名 (可选)")


class Settings(BaseSettings):
    """主配置类 - 聚合所有子配置"""

    jgi: JGISettings = Field(default_factory=JGISettings)
    extraction: ExtractionSettings = Field(default_factory=ExtractionSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    analytics: AnalyticsSettings = Field(default_factory=AnalyticsSettings)
    general: GeneralSettings = Field(default_factory=GeneralSettings)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @classmethod
    def load_from_env_file(cls, env_path: Optional[Path] = None) -> "Settings":
        """从指定的 .env 文件加载配置"""
        if env_path is None:
            # 默认查找 config/.env
            env_path = Path(__file__).parent / ".env"

        if env_path.exists():
            from dotenv import load_dotenv
            load_dotenv(env_path)

        return cls(
            jgi=JGISettings(),
            extraction=ExtractionSettings(),
            storage=StorageSettings(),
            analytics=AnalyticsSettings(),
            general=GeneralSettings(),
        )


@lru_cache()
def get_settings() -> Settings:
    """获取配置单例 (仅供命令行入口使用，组件通过构造参数接收配置)"""
    return Settings.load_from_env_file()
