"""
Stock Dashboard 行情缓存 / 推荐池服务
独立的缓存协调微服务，提供 HTTP 接口

架构分层：
  存储层     (Store)        → Redis 共享 KV，所有跨进程协调的唯一依据
  数据获取层 (Acquisition)  → Finnhub 实时报价 / Twelve Data 股票目录与 K 线
  处理层     (Processing)   → 外部响应解析、清洗、标准化
  推荐池层   (Pool)         → 按日版本化的推荐池、刷新锁与冷却标记
"""

__version__ = "1.0.0"
