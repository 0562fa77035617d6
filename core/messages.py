"""
core/messages.py -- Localized user-facing text.

Every string a user can see in a toast, a field error, or the user menu is
looked up here by a stable code. Routes and services pass codes around;
only the presentation edge calls t() to turn a code into text.

Layer rule: core/ is the kernel. No imports from api/, web/, or auth/.
"""

from __future__ import annotations

from core.config import get_settings

_CATALOG: dict[str, dict[str, str]] = {
    "en": {
        # Auth errors
        "invalid_credentials": "Username or password incorrect.",
        "username_exists": "Username already exists.",
        "registration_disabled": "Registration is currently disabled.",
        "oauth_failed": "GitHub sign-in failed. Please try again.",
        "oauth_account_not_linked": "This email is already used by another account.",
        "unauthorized": "Please sign in first.",
        "forbidden": "You do not have permission to do that.",
        "invalid_role": "That role cannot be assigned.",
        "user_not_found": "User not found.",
        # Validation
        "username_required": "Username is required.",
        "username_too_long": "Username must be at most 20 characters.",
        "username_charset": "Username may only contain letters, digits, underscores and hyphens.",
        "username_is_email": "Username cannot be an email address.",
        "password_too_short": "Password must be at least 8 characters.",
        "password_too_long": "Password is too long.",
        # Toasts
        "login_failed": "Login failed",
        "register_failed": "Registration failed",
        "retry_later": "Please try again later.",
        # Page text
        "welcome": "Welcome to MoeMail",
        "welcome_hint": "Sign in or register to continue",
        "login": "Login",
        "register": "Register",
        "username": "Username",
        "password": "Password",
        "github_login": "Sign in with GitHub",
        "profile": "Profile",
        "sign_out": "Sign out",
        # Role descriptions
        "role_emperor": "Emperor (site owner)",
        "role_knight": "Knight (privileged user)",
        "role_civilian": "Civilian (regular user)",
    },
    "zh": {
        "invalid_credentials": "用户名或密码错误",
        "username_exists": "用户名已存在",
        "registration_disabled": "注册功能已关闭",
        "oauth_failed": "GitHub 登录失败，请重试",
        "oauth_account_not_linked": "该邮箱已被其他账号使用",
        "unauthorized": "请先登录",
        "forbidden": "权限不足",
        "invalid_role": "无法分配该角色",
        "user_not_found": "用户不存在",
        "username_required": "用户名不能为空",
        "username_too_long": "用户名不能超过20个字符",
        "username_charset": "用户名只能包含字母、数字、下划线和横杠",
        "username_is_email": "用户名不能是邮箱格式",
        "password_too_short": "密码长度必须大于等于8位",
        "password_too_long": "密码过长",
        "login_failed": "登录失败",
        "register_failed": "注册失败",
        "retry_later": "请稍后重试",
        "welcome": "欢迎使用 MoeMail",
        "welcome_hint": "请登录或注册以继续",
        "login": "登录",
        "register": "注册",
        "username": "用户名",
        "password": "密码",
        "github_login": "使用 GitHub 登录",
        "profile": "个人中心",
        "sign_out": "退出登录",
        "role_emperor": "皇帝（网站所有者）",
        "role_knight": "骑士（高级用户）",
        "role_civilian": "平民（普通用户）",
    },
}


def t(code: str, locale: str | None = None) -> str:
    """Return the text for a message code.

    Falls back to English when the locale has no entry, then to the code
    itself so a missing translation is visible rather than fatal.
    """
    lang = locale or get_settings().locale
    text = _CATALOG.get(lang, {}).get(code)
    if text is None:
        text = _CATALOG["en"].get(code, code)
    return text
