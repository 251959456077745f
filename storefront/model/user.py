# --- storefront/model/user.py ---

from ..extensions import db
from ..utils.dates import utcnow, iso

class User(db.Model):
    __tablename__ = "user"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(180), nullable=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    phone = db.Column(db.String(32), nullable=True, index=True)
    role = db.Column(db.String(50), nullable=False, default="user", index=True) # roles: user, manager, admin
    email_verified = db.Column(db.Boolean, nullable=False, default=False)
    phone_verified = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    def as_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "phone": self.phone,
            "role": self.role,
            "emailVerified": self.email_verified,
            "phoneVerified": self.phone_verified,
            "createdAt": iso(self.created_at),
            }


class OtpToken(db.Model):
    __tablename__ = "otp_token"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True)
    token = db.Column(db.String(12), nullable=False)
    channel = db.Column(db.String(8), nullable=False, default="email")  # email | phone
    expires_at = db.Column(db.DateTime, nullable=False)
