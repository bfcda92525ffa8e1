"""领域层模型与协议。

包含：
- session: 认证状态、会话与 OAuth 回调参数。
- conversation: 会话、消息、待确认发送（PendingSend）及对账函数。
- exceptions: 业务异常类型定义。
"""
