"""Unit tests for the credential store"""
import pytest
from unittest.mock import patch

from app.error_handlers import ValidationError
from app.services.credential_service import CredentialService, PasswordValidationError


@pytest.mark.unit
class TestPasswordHashing:
    """Test password hashing functionality"""

    def test_hash_password(self):
        """Test password is hashed correctly"""
        hashed = CredentialService.hash_password("Abcd1234!")

        assert hashed != "Abcd1234!"
        assert hashed.startswith("$2b$")  # bcrypt prefix

    @pytest.mark.parametrize("value", ["Abcd1234!", "x", "contraseña con espacios", "🙂🙂🙂"])
    def test_hash_then_verify_round_trip(self, value):
        assert CredentialService.verify_password(value, CredentialService.hash_password(value)) is True

    def test_verify_password_incorrect(self):
        """Test incorrect password verification"""
        hashed = CredentialService.hash_password("Abcd1234!")

        assert CredentialService.verify_password("Abcd1234?", hashed) is False
        assert CredentialService.verify_password("abcd1234!", hashed) is False

    def test_verify_without_hash_is_false(self):
        """Google-only accounts have no password hash"""
        assert CredentialService.verify_password("Abcd1234!", None) is False

    def test_verify_empty_password_is_false(self):
        hashed = CredentialService.hash_password("Abcd1234!")
        assert CredentialService.verify_password("", hashed) is False

    def test_same_password_different_hashes(self):
        """Test same password produces different hashes (salt)"""
        hash1 = CredentialService.hash_password("SamePassword123!")
        hash2 = CredentialService.hash_password("SamePassword123!")

        assert hash1 != hash2


@pytest.mark.unit
class TestSecurityAnswers:

    def test_answer_verification_ignores_surrounding_whitespace(self):
        answer_hash = CredentialService.hash_answer("  Firulais ")

        assert CredentialService.verify_answer("Firulais", answer_hash) is True
        assert CredentialService.verify_answer(" Firulais  ", answer_hash) is True

    def test_wrong_answer(self):
        answer_hash = CredentialService.hash_answer("Firulais")
        assert CredentialService.verify_answer("Rex", answer_hash) is False

    def test_missing_answer_hash(self):
        assert CredentialService.verify_answer("Firulais", None) is False


@pytest.mark.unit
class TestPasswordValidation:
    """Test password policy validation"""

    @pytest.fixture(autouse=True)
    def mock_settings(self):
        """Mock settings for password policy"""
        with patch("app.services.credential_service.settings") as mock_s:
            mock_s.password_min_length = 8
            mock_s.password_require_uppercase = True
            mock_s.password_require_lowercase = True
            mock_s.password_require_digit = True
            mock_s.password_require_special = True
            yield mock_s

    def test_valid_password(self):
        # Should not raise
        CredentialService.validate_password_policy("Abcd1234!")

    def test_password_too_short(self):
        with pytest.raises(PasswordValidationError, match="at least"):
            CredentialService.validate_password_policy("Ab1!")

    def test_password_no_uppercase(self):
        with pytest.raises(PasswordValidationError, match="uppercase"):
            CredentialService.validate_password_policy("abcd1234!")

    def test_password_no_lowercase(self):
        with pytest.raises(PasswordValidationError, match="lowercase"):
            CredentialService.validate_password_policy("ABCD1234!")

    def test_password_no_digit(self):
        with pytest.raises(PasswordValidationError, match="digit"):
            CredentialService.validate_password_policy("Abcdefgh!")

    def test_password_no_special(self):
        with pytest.raises(PasswordValidationError, match="special"):
            CredentialService.validate_password_policy("Abcd12345")

    def test_common_password_rejected(self):
        with pytest.raises(PasswordValidationError, match="common"):
            CredentialService.validate_password_policy("Password123!")

    def test_repeated_characters_rejected(self):
        with pytest.raises(PasswordValidationError, match="repeat"):
            CredentialService.validate_password_policy("Abccc123!")

    def test_personal_data_rejected(self):
        with pytest.raises(PasswordValidationError, match="personal"):
            CredentialService.validate_password_policy("Torres2024!", personal_data=["torres", None])

    def test_short_personal_fragments_ignored(self):
        CredentialService.validate_password_policy("Abcd1234!", personal_data=["ab", "", None])


@pytest.mark.unit
class TestLookups:

    def test_find_by_email_is_case_insensitive(self, db_session, test_user):
        found = CredentialService(db_session).find_by_email("  ANA@Example.com ")
        assert found is not None
        assert found.id == test_user.id

    def test_create_normalises_email(self, db_session):
        user = CredentialService(db_session).create(email=" New@Example.COM ", name="New Client")
        assert user.email == "new@example.com"
        assert CredentialService(db_session).email_exists("new@example.com") is True

    def test_personal_data_for_user(self, test_user):
        assert CredentialService.personal_data_for(test_user) == ["Ana Torres", "ana", "5512345678"]

    def test_oauth_only_flag(self, test_user, google_user, make_user):
        linked = make_user(email="linked@example.com", google_id="google-sub-456")

        assert google_user.is_oauth_only is True
        assert test_user.is_oauth_only is False
        assert linked.is_oauth_only is False


@pytest.mark.unit
class TestSecurityQuestionUpdate:

    def test_sets_question_and_hashed_answer(self, db_session, google_user):
        CredentialService(db_session).set_security_question(google_user, "Favourite stylist?", "Marisol")
        db_session.commit()

        db_session.refresh(google_user)
        assert google_user.has_security_question is True
        assert google_user.security_answer_hash != "Marisol"
        assert CredentialService.verify_answer("Marisol", google_user.security_answer_hash)

    def test_replaces_existing_answer(self, db_session, test_user):
        CredentialService(db_session).set_security_question(test_user, "Favourite flower?", "Gardenia")

        assert test_user.security_question == "Favourite flower?"
        assert not CredentialService.verify_answer("Firulais", test_user.security_answer_hash)

    @pytest.mark.parametrize("answer", ["no", "123", "no se"])
    def test_common_answer_rejected(self, db_session, test_user, answer):
        original_hash = test_user.security_answer_hash

        with pytest.raises(ValidationError, match="too common"):
            CredentialService(db_session).set_security_question(test_user, "Favourite flower?", answer)

        assert test_user.security_question == "Name of your first pet?"
        assert test_user.security_answer_hash == original_hash
