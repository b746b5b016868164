"""
数据流分层架构
  Layer 1 – Store        : Redis 共享 KV（原子操作：SET NX / 比较删除 / SADD）
  Layer 2 – Acquisition  : 外部数据获取（Finnhub / Twelve Data）
  Layer 3 – Processing   : 响应解析与清洗
  Layer 4 – Pool         : 按日版本化的推荐池
"""
