import os

from pydantic import BaseModel


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    database_url: str = "mongodb://localhost:27017"
    database_name: str = "storefront"

    secret_key: str = "supersecretkey-change"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24

    razorpay_key_id: str = ""
    razorpay_key_secret: str = ""
    currency: str = "INR"

    # pricing policy
    tax_percent: float = 0.0
    apply_line_discounts: bool = True

    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 465
    smtp_user: str = ""
    smtp_password: str = ""
    mail_from: str = "Safar Team <no-reply@example.com>"
    mail_enabled: bool = True

    invoice_dir: str = "invoices"
    company_name: str = "Safar Techlab Pvt. Ltd."
    support_email: str = "support@safartechlab.com"

    otp_ttl_minutes: int = 10
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL", cls.model_fields["database_url"].default),
            database_name=os.getenv("DATABASE_NAME", cls.model_fields["database_name"].default),
            secret_key=os.getenv("SECRET_KEY", cls.model_fields["secret_key"].default),
            access_token_expire_minutes=int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24)),
            razorpay_key_id=os.getenv("RAZORPAY_KEY_ID", ""),
            razorpay_key_secret=os.getenv("RAZORPAY_KEY_SECRET", ""),
            currency=os.getenv("CURRENCY", "INR"),
            tax_percent=float(os.getenv("TAX_PERCENT", 0)),
            apply_line_discounts=_flag("APPLY_LINE_DISCOUNTS", "true"),
            smtp_host=os.getenv("SMTP_HOST", cls.model_fields["smtp_host"].default),
            smtp_port=int(os.getenv("SMTP_PORT", 465)),
            smtp_user=os.getenv("SMTP_USER", ""),
            smtp_password=os.getenv("SMTP_PASSWORD", ""),
            mail_from=os.getenv("MAIL_FROM", cls.model_fields["mail_from"].default),
            mail_enabled=_flag("MAIL_ENABLED", "true"),
            invoice_dir=os.getenv("INVOICE_DIR", "invoices"),
            company_name=os.getenv("COMPANY_NAME", cls.model_fields["company_name"].default),
            support_email=os.getenv("SUPPORT_EMAIL", cls.model_fields["support_email"].default),
            otp_ttl_minutes=int(os.getenv("OTP_TTL_MINUTES", 10)),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )
