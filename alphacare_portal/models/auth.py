from pydantic import BaseModel, ConfigDict, EmailStr
from pydantic.alias_generators import to_camel


class BackendPayload(BaseModel):
    """Accepts snake_case or camelCase input; sent to the backend in camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_backend(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class LoginRequest(BackendPayload):
    email: EmailStr
    password: str


class PatientLoginRequest(BackendPayload):
    username: str
    password: str


class DoctorRegisterRequest(BackendPayload):
    full_name: str
    email: EmailStr
    medical_registration_id: str
    specialty: str
    password: str
    hospital_id: str


class PatientRegisterRequest(BackendPayload):
    username: str
    email: EmailStr
    phone: str
    password: str


class CoordinatorRegisterRequest(BackendPayload):
    full_name: str
    email: EmailStr
    phone_number: str | None = None
    password: str
    hospital_id: str


class AdminRegisterRequest(BackendPayload):
    full_name: str
    email: EmailStr
    password: str


class OAuthRegistrationRequest(BackendPayload):
    email: EmailStr
    oauth_token: str
    full_name: str
    medical_registration_id: str
    specialty: str


LOGIN_REQUEST_MODELS: dict[str, type[BackendPayload]] = {
    "doctor": LoginRequest,
    "patient": PatientLoginRequest,
    "coordinator": LoginRequest,
    "admin": LoginRequest,
}

REGISTER_REQUEST_MODELS: dict[str, type[BackendPayload]] = {
    "doctor": DoctorRegisterRequest,
    "patient": PatientRegisterRequest,
    "coordinator": CoordinatorRegisterRequest,
    "admin": AdminRegisterRequest,
}
