"""
@description 配置管理模块
@responsibility 加载和验证 config.yaml，支持环境变量覆盖
"""

import os
import sys
from pathlib import Path
from typing import Literal, Optional

import yaml
from croniter import croniter
from pydantic import BaseModel, Field, field_validator


class DatabaseConfig(BaseModel):
    """数据库配置"""

    url: str = Field(
        default="sqlite+aiosqlite:///./db/data.db", description="SQLAlchemy 异步连接串"
    )


class LoggingConfig(BaseModel):
    """日志配置"""

    level: str = Field(default="INFO", description="日志级别")


class CategoryConfig(BaseModel):
    """分类规则：按扩展名匹配，列表顺序即匹配优先级"""

    name: str = Field(..., description="分类名称（同时作为目标子目录名）")
    extensions: list[str] = Field(..., description="扩展名列表（如 .pdf）")

    @field_validator("extensions")
    @classmethod
    def normalize_extensions(cls, value: list[str]) -> list[str]:
        # 统一为小写并带前导点号
        normalized = []
        for ext in value:
            ext = ext.strip().lower()
            if not ext:
                continue
            normalized.append(ext if ext.startswith(".") else f".{ext}")
        return normalized


def default_categories() -> list[CategoryConfig]:
    return [
        CategoryConfig(
            name="Documents",
            extensions=[".pdf", ".doc", ".docx", ".txt", ".xlsx", ".pptx", ".csv", ".rtf", ".odt", ".xls"],
        ),
        CategoryConfig(
            name="Images",
            extensions=[".jpg", ".jpeg", ".png", ".gif", ".svg", ".bmp", ".webp", ".ico", ".tiff", ".raw"],
        ),
        CategoryConfig(
            name="Videos",
            extensions=[".mp4", ".mkv", ".avi", ".mov", ".wmv", ".flv", ".webm", ".m4v", ".mpeg"],
        ),
        CategoryConfig(
            name="Audio",
            extensions=[".mp3", ".wav", ".flac", ".aac", ".ogg", ".m4a", ".wma", ".opus"],
        ),
        CategoryConfig(
            name="Archives",
            extensions=[".zip", ".rar", ".7z", ".tar", ".gz", ".bz2", ".xz"],
        ),
        CategoryConfig(
            name="Code",
            extensions=[".js", ".ts", ".py", ".java", ".cpp", ".c", ".html", ".css", ".json", ".xml", ".md"],
        ),
        CategoryConfig(
            name="Executables",
            extensions=[".exe", ".msi", ".dmg", ".deb", ".rpm", ".app", ".bat", ".sh"],
        ),
    ]


DEFAULT_IGNORED_FOLDERS = [
    "node_modules",
    "Program Files",
    "Program Files (x86)",
    "Windows",
    "System32",
    ".git",
    "AppData",
    "$Recycle.Bin",
    "Recovery",
]


class OrganizerConfig(BaseModel):
    """整理相关配置"""

    organized_root: str = Field(
        default=str(Path.home() / "Organized Files"), description="默认整理目标根目录"
    )
    ignored_folders: list[str] = Field(
        default_factory=lambda: list(DEFAULT_IGNORED_FOLDERS),
        description="扫描时整体跳过的目录名",
    )
    max_depth: int = Field(default=10, ge=0, description="最大递归深度")
    recursive: bool = Field(default=True, description="是否递归扫描子目录")
    categories: list[CategoryConfig] = Field(
        default_factory=default_categories, description="有序分类规则表"
    )


class QueueConfig(BaseModel):
    """单个任务队列配置"""

    concurrency: int = Field(default=1, ge=1, description="worker 并发数")
    attempts: int = Field(default=1, ge=1, description="最大执行次数（含首次）")
    backoff_delay: float = Field(default=0, ge=0, description="指数退避基础延迟（秒）")


class QueuesConfig(BaseModel):
    organize: QueueConfig = Field(
        default_factory=lambda: QueueConfig(concurrency=2, attempts=3, backoff_delay=5)
    )
    duplicate_scan: QueueConfig = Field(
        default_factory=lambda: QueueConfig(concurrency=1, attempts=2, backoff_delay=3)
    )


class ScheduleConfig(BaseModel):
    """定时任务配置"""

    pattern: str = Field(..., description="cron 表达式")
    enabled: bool = Field(default=False, description="是否启用")
    timezone: str = Field(default="UTC", description="时区")
    action: Literal["organize", "duplicate-scan", "cleanup"] = Field(
        ..., description="触发的动作"
    )
    source_path: str = Field(default="", description="源目录")
    target_path: Optional[str] = Field(default=None, description="目标目录")
    days_to_keep: int = Field(default=7, ge=0, description="任务记录保留天数（cleanup）")

    @field_validator("pattern")
    @classmethod
    def validate_pattern(cls, value: str) -> str:
        if not croniter.is_valid(value):
            raise ValueError(f"无效的 cron 表达式: {value}")
        return value


def default_schedules() -> dict[str, ScheduleConfig]:
    return {
        "auto_organize_downloads": ScheduleConfig(
            pattern="0 2 * * *", action="organize"
        ),
        "weekly_duplicate_scan": ScheduleConfig(
            pattern="0 3 * * 0", action="duplicate-scan"
        ),
        "daily_job_cleanup": ScheduleConfig(
            pattern="0 0 * * *", action="cleanup", days_to_keep=7
        ),
    }


class Config(BaseModel):
    """全局配置"""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    organizer: OrganizerConfig = Field(default_factory=OrganizerConfig)
    queues: QueuesConfig = Field(default_factory=QueuesConfig)
    schedules: dict[str, ScheduleConfig] = Field(default_factory=default_schedules)


def get_config_path() -> Path:
    """获取配置文件路径"""
    # 优先使用 CONFIG_PATH 环境变量，否则使用项目根目录的 config.yaml
    if config_path_str := os.environ.get("CONFIG_PATH"):
        return Path(config_path_str)
    return Path(__file__).parent.parent.parent / "config.yaml"


def load_config() -> Config:
    """加载配置文件并应用环境变量覆盖"""
    config_path = get_config_path()

    # 配置文件不存在时生成模板并退出
    if not config_path.exists():
        _generate_config_template(config_path)
        print(f"错误: 配置文件不存在: {config_path}")
        print(f"已生成配置模板: {config_path.parent / 'config.example.yaml'}")
        sys.exit(1)

    with open(config_path) as f:
        config_data = yaml.safe_load(f) or {}

    config = Config(**config_data)

    if database_url := os.environ.get("DATABASE_URL"):
        config.database.url = database_url
    if organized_root := os.environ.get("ORGANIZED_ROOT"):
        config.organizer.organized_root = organized_root
    if log_level := os.environ.get("LOG_LEVEL"):
        config.logging.level = log_level

    return config


def _generate_config_template(config_path: Path) -> None:
    """生成配置模板文件"""
    template_path = config_path.parent / "config.example.yaml"

    if template_path.exists():
        return

    template_content = """# 数据库配置
database:
  # SQLAlchemy 异步连接串，SQLite 文件所在目录会自动创建
  url: "sqlite+aiosqlite:///./db/data.db"

# 日志配置
logging:
  level: "INFO"

# 整理相关配置
organizer:
  # 未指定 target_path 时的整理目标根目录
  organized_root: "~/Organized Files"
  # 扫描时整体跳过的目录名（包括其子目录）
  ignored_folders: ["node_modules", ".git", "AppData", "$Recycle.Bin", "System32"]
  # 最大递归深度，防止异常目录结构导致扫描无法结束
  max_depth: 10
  # false 表示只整理源目录第一层的文件
  recursive: true
  # 分类规则，按顺序匹配，第一条命中的规则生效，未命中归入 Others
  categories:
    - name: "Documents"
      extensions: [".pdf", ".doc", ".docx", ".txt", ".xlsx", ".csv"]
    - name: "Images"
      extensions: [".jpg", ".jpeg", ".png", ".gif", ".webp"]
    - name: "Videos"
      extensions: [".mp4", ".mkv", ".avi", ".mov"]
    - name: "Audio"
      extensions: [".mp3", ".wav", ".flac"]
    - name: "Archives"
      extensions: [".zip", ".rar", ".7z", ".tar", ".gz"]

# 任务队列配置
queues:
  organize:
    concurrency: 2 # worker 并发数
    attempts: 3 # 结构性失败时的最大执行次数
    backoff_delay: 5 # 指数退避基础延迟（秒）
  duplicate_scan:
    concurrency: 1 # 全量哈希较重，串行执行
    attempts: 2
    backoff_delay: 3

# 定时任务配置
schedules:
  auto_organize_downloads:
    pattern: "0 2 * * *" # 每天凌晨 2 点
    enabled: false
    timezone: "UTC"
    action: "organize"
    source_path: "~/Downloads"
    target_path: "~/Organized Files"
  weekly_duplicate_scan:
    pattern: "0 3 * * 0" # 每周日凌晨 3 点
    enabled: false
    timezone: "UTC"
    action: "duplicate-scan"
    source_path: "~/Organized Files"
  daily_job_cleanup:
    pattern: "0 0 * * *" # 每天零点
    enabled: false
    timezone: "UTC"
    action: "cleanup"
    days_to_keep: 7
"""

    with open(template_path, "w") as f:
        f.write(template_content)
