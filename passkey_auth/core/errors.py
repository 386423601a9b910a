"""
Error taxonomy for the passkey ceremonies.

Every error carries the HTTP status it maps to and the message the client is
allowed to see. Dependency failures keep their detail for the logs and always
present a generic message to the client.
"""


class PasskeyAuthError(Exception):
    status_code = 400
    message = "Bad Request"

    def __init__(self, message=None, detail=None):
        self.message = message or self.message
        self.detail = detail or self.message
        super().__init__(self.detail)


# Transport rejections

class MissingOrigin(PasskeyAuthError):
    status_code = 401
    message = "Missing Origin"


class InvalidOrigin(PasskeyAuthError):
    status_code = 403
    message = "Invalid Origin"


# Request validation

class MissingCredentialId(PasskeyAuthError):
    message = "Invalid credential id"


class CredentialIdExtractionFailed(PasskeyAuthError):
    message = "Could not determine credential id"


# Challenge errors

class ChallengeError(PasskeyAuthError):
    pass


class InvalidChallenge(ChallengeError):
    message = "Invalid challenge"


class ChallengeTypeMismatch(ChallengeError):
    message = "Challenge type mismatch"


class ChallengeExpired(ChallengeError):
    message = "Challenge expired"


class MissingUserHandle(ChallengeError):
    message = "Challenge is missing its user handle"


# Credential errors

class CredentialError(PasskeyAuthError):
    pass


class UnknownCredential(CredentialError):
    message = "Unknown credential"


class InvalidCredential(CredentialError):
    message = "Credential verification failed"


class CredentialCounterRegression(InvalidCredential):
    message = "Authenticator counter did not increase"


# Dependency failures

class DependencyError(PasskeyAuthError):
    status_code = 500
    message = "Internal Server Error"

    def __init__(self, detail=None):
        super().__init__(message=None, detail=detail)


class RepositoryError(DependencyError):
    pass


class ChallengeStoreFailed(RepositoryError):
    pass


class CredentialStoreFailed(RepositoryError):
    pass


class IdentityCreationFailed(DependencyError):
    pass


class SessionMintFailed(DependencyError):
    pass


# Session introspection

class InvalidSessionToken(PasskeyAuthError):
    status_code = 401
    message = "Could not validate credentials"
