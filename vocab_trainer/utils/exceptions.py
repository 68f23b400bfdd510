"""
业务异常定义
路由层通过异常处理器把这些异常映射为HTTP状态码
"""
from typing import Optional


class VocabTrainerError(Exception):
    """业务异常基类"""
    status_code = 500

    def __init__(self, message: str = ""):
        self.message = message
        super().__init__(message)


class ProviderError(VocabTrainerError):
    """大模型服务调用失败（传输、鉴权、额度等）"""
    status_code = 502

    UNAUTHORIZED = "unauthorized"
    PAYMENT_REQUIRED = "payment_required"
    MODEL_NOT_FOUND = "model_not_found"
    RATE_LIMITED = "rate_limited"
    BAD_REQUEST = "bad_request"
    TIMEOUT = "timeout"
    GENERIC = "generic"

    MESSAGES = {
        UNAUTHORIZED: "大模型API密钥无效或未授权",
        PAYMENT_REQUIRED: "大模型账户额度不足，需要充值",
        MODEL_NOT_FOUND: "请求的模型不存在或不可用",
        RATE_LIMITED: "大模型请求过于频繁，已被限流",
        BAD_REQUEST: "大模型请求参数错误",
        TIMEOUT: "大模型请求超时",
        GENERIC: "大模型服务调用失败",
    }

    def __init__(self, category: str, message: str = "", status_code: Optional[int] = None):
        self.category = category
        self.provider_status = status_code
        text = self.MESSAGES.get(category, self.MESSAGES[self.GENERIC])
        if message:
            text = f"{text}: {message}"
        super().__init__(text)

    @classmethod
    def classify(cls, status_code: Optional[int]) -> str:
        """根据HTTP状态码对错误分类"""
        return {
            400: cls.BAD_REQUEST,
            401: cls.UNAUTHORIZED,
            402: cls.PAYMENT_REQUIRED,
            404: cls.MODEL_NOT_FOUND,
            408: cls.TIMEOUT,
            429: cls.RATE_LIMITED,
        }.get(status_code, cls.GENERIC)


class ParseError(VocabTrainerError):
    """大模型返回内容无法解析或不符合要求"""
    status_code = 502


class NotFoundError(VocabTrainerError):
    status_code = 404


class ValidationError(VocabTrainerError):
    status_code = 400


class ConflictError(VocabTrainerError):
    """记录已被其他请求修改（版本号不一致）"""
    status_code = 409


# 允许重试的异常类型
RETRYABLE_ERRORS = (ProviderError, ParseError)
